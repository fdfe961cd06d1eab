"""
Dashboard view models
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime

from marketplace_matching.models.matching_config import MatchingConfiguration, WeightCheck
from marketplace_matching.models.schemas import Candidate, DispatchResult

DashboardState = Literal["none_selected", "selected", "computing"]
SnapshotStatus = Literal["not_loaded", "loaded", "not_computed", "lookup_failed"]

COMPUTE_CALL_TO_ACTION = "Compute matches"


class Notification(BaseModel):
    title: str
    description: str = ""
    variant: Literal["default", "warning", "destructive"] = "default"
    created_at: datetime = Field(default_factory=datetime.utcnow)


class DashboardView(BaseModel):
    """What an operator sees for one dashboard"""
    state: DashboardState
    selected_request_id: Optional[str] = None
    snapshot_status: SnapshotStatus = "not_loaded"
    snapshot_id: Optional[str] = None
    snapshot_created_at: Optional[datetime] = None
    algorithm_version: Optional[str] = None
    candidates: List[Candidate] = []
    call_to_action: Optional[str] = None
    configuration: MatchingConfiguration
    weight_check: WeightCheck
    last_dispatch: Optional[DispatchResult] = None
    notifications: List[Notification] = []


class DashboardSessionInfo(BaseModel):
    session_id: str
    created_at: datetime
    view: DashboardView


# -------- Payloads --------
class SelectRequestPayload(BaseModel):
    request_id: Optional[str] = None


class DashboardComputePayload(BaseModel):
    force_recompute: bool = False


class DashboardInvitePayload(BaseModel):
    max_invites: Optional[int] = Field(default=None, ge=1)


class DashboardActionResult(BaseModel):
    notification: Optional[Notification] = None
    view: DashboardView
