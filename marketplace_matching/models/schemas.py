from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Literal
from datetime import datetime

# -------- Requests (owned by request intake, read only here) --------
class MatchingRequest(BaseModel):
    request_id: str
    title: str = ""
    budget_range: str = ""
    timeline: str = ""
    custom_requirements: str = ""
    status: str = "submitted"
    skills: List[str] = []
    industries: List[str] = []
    locales: List[str] = []
    is_sensitive: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)

# -------- Freelancers --------
class OutcomeHistory(BaseModel):
    csat_score: Optional[float] = None      # 0-5
    on_time_rate: Optional[float] = None    # 0-1
    revision_rate: Optional[float] = None   # 0-1, lower is better
    pass_at_qa_rate: Optional[float] = None # 0-1
    dispute_rate: Optional[float] = None    # 0-1, lower is better

class FreelancerProfile(BaseModel):
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    skills: List[str] = []
    industries: List[str] = []
    tools: List[str] = []
    certifications: List[str] = []
    locales: List[str] = []
    price_band_min: int = 0   # pence
    price_band_max: int = 0   # pence
    availability_weekly_hours: float = 0
    outcome_history: Optional[OutcomeHistory] = None
    completed_projects: int = 0
    last_conflict_at: Optional[datetime] = None

# -------- Snapshots --------
class CandidateProfileView(BaseModel):
    """Denormalized, read-only view stored with a candidate"""
    full_name: Optional[str] = None
    email: Optional[str] = None
    skills: List[str] = []
    price_range: Optional[str] = None
    availability: Optional[str] = None

class Candidate(BaseModel):
    user_id: str
    score: float = Field(ge=0.0, le=1.0)
    breakdown: Dict[str, float] = {}
    profile: CandidateProfileView = Field(default_factory=CandidateProfileView)

class MatchingSnapshot(BaseModel):
    snapshot_id: str
    request_id: str
    candidates: List[Candidate] = []
    weights_used: Dict[str, float] = {}
    shortlist_size: int = 0
    algorithm_version: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)

class ComputeMatchingPayload(BaseModel):
    force_recompute: bool = False

class ComputeMatchingResult(BaseModel):
    request_id: str
    message: str
    snapshot_id: Optional[str] = None
    candidate_count: int = 0
    reused: bool = False

# -------- Invitations --------
InvitationStatus = Literal["sent", "accepted", "declined", "expired"]

class Invitation(BaseModel):
    invite_id: str
    request_id: str
    user_id: str
    status: InvitationStatus = "sent"
    score_at_invite: Optional[float] = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=datetime.utcnow)
    responded_at: Optional[datetime] = None
    response_message: Optional[str] = None

class SendInvitationsPayload(BaseModel):
    user_ids: List[str]
    max_invites: Optional[int] = Field(default=None, ge=1)

class InviteResponsePayload(BaseModel):
    action: Literal["accept", "decline"]
    response_message: Optional[str] = None

class DispatchResult(BaseModel):
    request_id: str
    requested: int = 0
    confirmed: int = 0
    sent_to: List[str] = []
    skipped: List[str] = []
    errors: List[str] = []
    expires_at: Optional[datetime] = None

    @property
    def invitations_sent(self) -> int:
        return self.confirmed

class ExpiryReport(BaseModel):
    expired_count: int = 0
    rolled_requests: List[str] = []
    rolled_invitations: int = 0
