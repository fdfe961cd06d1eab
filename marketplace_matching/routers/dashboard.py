"""
Dashboard Router - HTTP surface for per-admin matching dashboards
"""
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Query

from marketplace_matching.models.dashboard import (
    DashboardActionResult, DashboardComputePayload, DashboardInvitePayload,
    DashboardSessionInfo, SelectRequestPayload
)
from marketplace_matching.models.matching_config import MatchingConfiguration
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.dashboard import MatchingDashboard
from marketplace_matching.services.dashboard_sessions import (
    DASHBOARD_IDLE_MINUTES, DashboardSession, dashboard_sessions
)
from marketplace_matching.services.db import (
    admin_settings_coll, freelancers_coll, invites_coll, notifications_coll, requests_coll, snapshots_coll
)
from marketplace_matching.services.invitations import InvitationDispatcher
from marketplace_matching.services.matching import MatchingService
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import MatchingServiceError, map_to_http_exception
from marketplace_matching.utils.logging_config import get_logger

router = APIRouter(prefix="/api/dashboard/sessions", tags=["dashboard"])
logger = get_logger(__name__)


async def build_dashboard() -> MatchingDashboard:
    config_store = ConfigurationStore(admin_settings_coll)
    snapshot_store = SnapshotStore(snapshots_coll)
    config = await config_store.load_configuration()
    return MatchingDashboard(
        config=config,
        config_store=config_store,
        snapshot_store=snapshot_store,
        matching_service=MatchingService(config_store, snapshot_store, requests_coll, freelancers_coll),
        dispatcher=InvitationDispatcher(invites_coll, notifications_coll, config_store, snapshot_store),
    )


def _session(session_id: str) -> DashboardSession:
    try:
        return dashboard_sessions.get(session_id)
    except MatchingServiceError as e:
        raise map_to_http_exception(e)


def _info(session: DashboardSession) -> DashboardSessionInfo:
    return DashboardSessionInfo(
        session_id=session.session_id,
        created_at=session.created_at,
        view=session.dashboard.view(),
    )


@router.post("", response_model=DashboardSessionInfo)
async def open_dashboard():
    """Open a dashboard with the configuration as currently stored.

    Sessions idle for longer than DASHBOARD_IDLE_MINUTES are dropped first.
    """
    dashboard_sessions.prune_idle(timedelta(minutes=DASHBOARD_IDLE_MINUTES))
    session = await dashboard_sessions.create(build_dashboard)
    return _info(session)


@router.get("/{session_id}", response_model=DashboardSessionInfo)
async def get_dashboard(session_id: str):
    return _info(_session(session_id))


@router.post("/{session_id}/select", response_model=DashboardActionResult)
async def select_request(session_id: str, payload: SelectRequestPayload):
    dashboard = _session(session_id).dashboard
    notification = await dashboard.select_request(payload.request_id)
    return DashboardActionResult(notification=notification, view=dashboard.view())


@router.post("/{session_id}/compute", response_model=DashboardActionResult)
async def compute_matches(session_id: str, payload: Optional[DashboardComputePayload] = None):
    dashboard = _session(session_id).dashboard
    payload = payload or DashboardComputePayload()
    notification = await dashboard.compute(force_recompute=payload.force_recompute)
    return DashboardActionResult(notification=notification, view=dashboard.view())


@router.post("/{session_id}/recompute", response_model=DashboardActionResult)
async def recompute_matches(session_id: str):
    dashboard = _session(session_id).dashboard
    notification = await dashboard.recompute()
    return DashboardActionResult(notification=notification, view=dashboard.view())


@router.post("/{session_id}/invitations", response_model=DashboardActionResult)
async def invite_candidates(session_id: str, payload: Optional[DashboardInvitePayload] = None):
    dashboard = _session(session_id).dashboard
    payload = payload or DashboardInvitePayload()
    notification = await dashboard.send_invitations(max_invites=payload.max_invites)
    return DashboardActionResult(notification=notification, view=dashboard.view())


@router.put("/{session_id}/configuration", response_model=DashboardActionResult)
async def save_configuration(
    session_id: str,
    config: MatchingConfiguration,
    expected_version: Optional[int] = Query(None, ge=0),
):
    dashboard = _session(session_id).dashboard
    notification = await dashboard.save_configuration(config, expected_version=expected_version)
    return DashboardActionResult(notification=notification, view=dashboard.view())


@router.delete("/{session_id}")
async def close_dashboard(session_id: str):
    try:
        dashboard_sessions.close(session_id)
    except MatchingServiceError as e:
        raise map_to_http_exception(e)
    return {"message": f"Dashboard session {session_id} closed"}
