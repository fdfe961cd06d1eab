"""
Matching Router - compute, read and act on matching snapshots for a request
"""
from typing import List

from fastapi import APIRouter, HTTPException, Query, Request

from marketplace_matching.models.schemas import (
    ComputeMatchingPayload, ComputeMatchingResult, MatchingSnapshot, SendInvitationsPayload
)
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.db import (
    admin_settings_coll, freelancers_coll, invites_coll, notifications_coll, requests_coll, snapshots_coll
)
from marketplace_matching.services.invitations import InvitationDispatcher
from marketplace_matching.services.matching import MatchingService
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import MatchingServiceError, map_to_http_exception
from marketplace_matching.utils.logging_config import get_logger, PerformanceMonitor

router = APIRouter(prefix="/api/matching/requests", tags=["matching"])
logger = get_logger(__name__)


def _matching_service() -> MatchingService:
    return MatchingService(
        ConfigurationStore(admin_settings_coll),
        SnapshotStore(snapshots_coll),
        requests_coll,
        freelancers_coll,
    )


def _dispatcher() -> InvitationDispatcher:
    return InvitationDispatcher(
        invites_coll,
        notifications_coll,
        ConfigurationStore(admin_settings_coll),
        SnapshotStore(snapshots_coll),
    )


@router.post("/{request_id}/compute", response_model=ComputeMatchingResult)
async def compute_matching(request_id: str, request: Request, payload: ComputeMatchingPayload = None):
    """Score freelancers for a request and store the shortlist as a new snapshot"""
    trace_id = getattr(request.state, 'request_id', 'unknown')
    payload = payload or ComputeMatchingPayload()

    with PerformanceMonitor(f"compute_matching[{request_id}]", logger):
        try:
            return await _matching_service().compute_matching(request_id, force_recompute=payload.force_recompute)
        except MatchingServiceError as e:
            logger.error(
                f"Matching failed for request {request_id}: {e.message}",
                extra={"request_id": trace_id, "details": e.details}
            )
            raise map_to_http_exception(e)


@router.get("/{request_id}/snapshot", response_model=MatchingSnapshot)
async def get_latest_snapshot(request_id: str):
    try:
        snapshot = await SnapshotStore(snapshots_coll).get_latest_snapshot(request_id)
    except MatchingServiceError as e:
        raise map_to_http_exception(e)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No snapshot computed yet")
    return snapshot


@router.get("/{request_id}/snapshots", response_model=List[MatchingSnapshot])
async def list_snapshots(request_id: str, limit: int = Query(20, ge=1, le=100)):
    """Snapshot history for a request, newest first"""
    try:
        return await SnapshotStore(snapshots_coll).list_snapshots(request_id, limit=limit)
    except MatchingServiceError as e:
        raise map_to_http_exception(e)


@router.post("/{request_id}/invitations")
async def send_invitations(request_id: str, payload: SendInvitationsPayload, request: Request):
    """Invite the given candidates; the response counts only confirmed invitations"""
    trace_id = getattr(request.state, 'request_id', 'unknown')
    if not payload.user_ids:
        raise HTTPException(status_code=400, detail="No candidates selected")

    dispatcher = _dispatcher()
    scores = {}
    try:
        # scores at invite time come from the snapshot the operator was looking at
        snapshot = await dispatcher.snapshot_store.get_latest_snapshot(request_id)
        if snapshot is not None:
            scores = {c.user_id: c.score for c in snapshot.candidates}
        result = await dispatcher.send_invitations(
            request_id, payload.user_ids, max_invites=payload.max_invites, scores=scores
        )
    except MatchingServiceError as e:
        logger.error(f"Dispatch failed for request {request_id}: {e.message}", extra={"request_id": trace_id})
        raise map_to_http_exception(e)

    return {
        **result.dict(),
        "invitations_sent": result.invitations_sent,
        "message": f"Sent {result.invitations_sent} invitations",
    }
