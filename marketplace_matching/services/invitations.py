"""
Invitation Dispatcher - time-boxed invitations for shortlisted candidates
"""
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from marketplace_matching.models.schemas import DispatchResult, ExpiryReport, Invitation
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.db import to_dict
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import (
    DispatchError, InvitationStateError, MatchingServiceError, NotFoundError
)
from marketplace_matching.utils.logging_config import get_logger
from marketplace_matching.utils.utils import as_naive_utc

logger = get_logger(__name__)

# Invitations rolled to the next candidates when every invite for a request lapsed
ROLL_FORWARD_COUNT = 2


class InvitationDispatcher:
    STATUS_SENT = "sent"
    STATUS_ACCEPTED = "accepted"
    STATUS_DECLINED = "declined"
    STATUS_EXPIRED = "expired"

    def __init__(
        self,
        invites_coll,
        notifications_coll,
        config_store: ConfigurationStore,
        snapshot_store: SnapshotStore,
    ):
        self.invites_coll = invites_coll
        self.notifications_coll = notifications_coll
        self.config_store = config_store
        self.snapshot_store = snapshot_store

    async def send_invitations(
        self,
        request_id: str,
        user_ids: List[str],
        max_invites: Optional[int] = None,
        scores: Optional[Dict[str, float]] = None,
    ) -> DispatchResult:
        """Invite each user once per request.

        Per-user failures are collected in the result; DispatchError is raised
        only when nothing could be attempted.
        """
        scores = scores or {}
        logger.info(f"Sending invitations for request {request_id} to {len(user_ids)} candidates")

        try:
            existing = await self.invites_coll.find({"request_id": request_id}).to_list(length=None)
        except Exception as e:
            raise DispatchError(
                f"Failed to read existing invitations for request {request_id}",
                request_id=request_id,
                cause=e,
            )
        config = await self.config_store.load_configuration()

        already_invited = {doc["user_id"] for doc in existing}
        result = DispatchResult(request_id=request_id, requested=len(user_ids))

        targets: List[str] = []
        for user_id in user_ids:
            if user_id in already_invited or user_id in targets:
                logger.debug(f"Skipping duplicate invitation for {user_id}")
                result.skipped.append(user_id)
            elif max_invites is not None and len(targets) >= max_invites:
                result.skipped.append(user_id)
            else:
                targets.append(user_id)

        now = datetime.utcnow()
        expires_at = now + timedelta(hours=config.invite_response_sla_hours)
        result.expires_at = expires_at

        for user_id in targets:
            invitation = Invitation(
                invite_id=str(uuid.uuid4()),
                request_id=request_id,
                user_id=user_id,
                score_at_invite=scores.get(user_id),
                expires_at=expires_at,
                created_at=now,
            )
            try:
                await self.invites_coll.insert_one(invitation.dict())
            except DuplicateKeyError:
                logger.info(f"Invitation for {user_id} on request {request_id} already exists")
                result.skipped.append(user_id)
                continue
            except Exception as e:
                logger.error(f"Failed to create invite for {user_id}: {e}")
                result.skipped.append(user_id)
                result.errors.append(f"{user_id}: {e}")
                continue
            result.sent_to.append(user_id)

        result.confirmed = len(result.sent_to)
        if result.sent_to:
            await self._notify(request_id, result.sent_to, now)

        logger.info(f"Invitations for request {request_id}: {result.confirmed} sent, {len(result.skipped)} skipped")
        return result

    async def _notify(self, request_id: str, user_ids: List[str], now: datetime) -> None:
        notifications = [
            {
                "user_id": user_id,
                "type": "invitation",
                "title": "New Project Invitation",
                "message": "You've been invited to quote on a new project",
                "related_id": request_id,
                "created_at": now,
            }
            for user_id in user_ids
        ]
        try:
            await self.notifications_coll.insert_many(notifications)
        except Exception as e:
            # invitations stand even if the in-app notice is lost
            logger.warning(f"Failed to record invitation notifications for request {request_id}: {e}")

    async def respond_to_invitation(
        self,
        invite_id: str,
        accept: bool,
        response_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Invitation:
        now = now or datetime.utcnow()
        doc = await self.invites_coll.find_one({"invite_id": invite_id})
        if not doc:
            raise NotFoundError("Invitation not found", resource="invitation", resource_id=invite_id)

        invitation = Invitation(**to_dict(doc))
        if invitation.status != self.STATUS_SENT:
            raise InvitationStateError(
                f"Cannot respond to invitation with status: {invitation.status}",
                invite_id=invite_id,
                status=invitation.status,
            )

        if as_naive_utc(invitation.expires_at) < as_naive_utc(now):
            await self.invites_coll.update_one(
                {"invite_id": invite_id},
                {"$set": {"status": self.STATUS_EXPIRED, "responded_at": now}},
            )
            raise InvitationStateError(
                "Invitation has expired",
                invite_id=invite_id,
                status=self.STATUS_EXPIRED,
            )

        status = self.STATUS_ACCEPTED if accept else self.STATUS_DECLINED
        await self.invites_coll.update_one(
            {"invite_id": invite_id},
            {"$set": {"status": status, "responded_at": now, "response_message": response_message}},
        )
        logger.info(f"Invitation {invite_id} {status}")
        return invitation.copy(update={"status": status, "responded_at": now, "response_message": response_message})

    async def expire_overdue_invitations(self, now: Optional[datetime] = None) -> ExpiryReport:
        """Mark lapsed invitations expired and roll requests left without any to the next candidates"""
        now = now or datetime.utcnow()
        overdue = await self.invites_coll.find(
            {"status": self.STATUS_SENT, "expires_at": {"$lt": now}}
        ).to_list(length=None)

        report = ExpiryReport()
        if not overdue:
            return report

        await self.invites_coll.update_many(
            {"invite_id": {"$in": [doc["invite_id"] for doc in overdue]}},
            {"$set": {"status": self.STATUS_EXPIRED, "responded_at": now}},
        )
        report.expired_count = len(overdue)

        request_ids = list(dict.fromkeys(doc["request_id"] for doc in overdue))
        for request_id in request_ids:
            active = await self.invites_coll.count_documents(
                {"request_id": request_id, "status": {"$in": [self.STATUS_SENT, self.STATUS_ACCEPTED]}}
            )
            if active:
                continue
            try:
                rolled = await self._roll_to_next_candidates(request_id)
            except MatchingServiceError as e:
                logger.error(f"Could not roll invitations for request {request_id}: {e.message}")
                continue
            if rolled:
                report.rolled_requests.append(request_id)
                report.rolled_invitations += rolled

        logger.info(f"Processed {report.expired_count} expired invitations")
        return report

    async def _roll_to_next_candidates(self, request_id: str) -> int:
        snapshot = await self.snapshot_store.get_latest_snapshot(request_id)
        if snapshot is None:
            logger.info(f"No matching snapshot found for request {request_id}")
            return 0

        invited = {
            doc["user_id"]
            for doc in await self.invites_coll.find({"request_id": request_id}).to_list(length=None)
        }
        next_candidates = [c for c in snapshot.candidates if c.user_id not in invited][:ROLL_FORWARD_COUNT]
        if not next_candidates:
            return 0

        result = await self.send_invitations(
            request_id,
            [c.user_id for c in next_candidates],
            scores={c.user_id: c.score for c in next_candidates},
        )
        logger.info(f"Rolled invitations to {result.confirmed} additional candidates for request {request_id}")
        return result.confirmed
