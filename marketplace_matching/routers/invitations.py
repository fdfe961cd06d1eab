"""
Invitations Router - candidate responses and SLA expiry
"""
from fastapi import APIRouter

from marketplace_matching.models.schemas import ExpiryReport, Invitation, InviteResponsePayload
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.db import (
    admin_settings_coll, invites_coll, notifications_coll, snapshots_coll
)
from marketplace_matching.services.invitations import InvitationDispatcher
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import MatchingServiceError, map_to_http_exception
from marketplace_matching.utils.logging_config import get_logger

router = APIRouter(prefix="/api/invitations", tags=["invitations"])
logger = get_logger(__name__)


def _dispatcher() -> InvitationDispatcher:
    return InvitationDispatcher(
        invites_coll,
        notifications_coll,
        ConfigurationStore(admin_settings_coll),
        SnapshotStore(snapshots_coll),
    )


@router.post("/expire", response_model=ExpiryReport)
async def expire_invitations():
    """Expire invitations past their SLA; meant to be called on a schedule"""
    try:
        return await _dispatcher().expire_overdue_invitations()
    except MatchingServiceError as e:
        raise map_to_http_exception(e)


@router.post("/{invite_id}/respond", response_model=Invitation)
async def respond_to_invitation(invite_id: str, payload: InviteResponsePayload):
    try:
        return await _dispatcher().respond_to_invitation(
            invite_id,
            accept=payload.action == "accept",
            response_message=payload.response_message,
        )
    except MatchingServiceError as e:
        logger.warning(f"Could not record response for invitation {invite_id}: {e.message}")
        raise map_to_http_exception(e)
