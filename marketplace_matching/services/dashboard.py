"""
Matching Dashboard - operator-facing coordinator for one admin session.

Every remote call made from here is caught where it is made and turned into
a Notification; nothing raised by the stores or services escapes to the
caller and nothing is retried automatically.
"""
import asyncio
import os
from typing import List, Optional

from dotenv import load_dotenv

from marketplace_matching.models.dashboard import (
    COMPUTE_CALL_TO_ACTION, DashboardView, Notification
)
from marketplace_matching.models.matching_config import MatchingConfiguration
from marketplace_matching.models.schemas import DispatchResult, MatchingSnapshot
from marketplace_matching.services.config_store import ConfigurationStore
from marketplace_matching.services.invitations import InvitationDispatcher
from marketplace_matching.services.matching import MatchingService
from marketplace_matching.services.scoring import sort_candidates
from marketplace_matching.services.snapshot_store import SnapshotStore
from marketplace_matching.utils.exceptions import (
    ConfigurationConflictError, ConfigurationSaveError, MatchingServiceError
)
from marketplace_matching.utils.logging_config import get_logger

load_dotenv()
COMPUTE_TIMEOUT_SECONDS = float(os.getenv("COMPUTE_TIMEOUT_SECONDS", "45"))

logger = get_logger(__name__)

MAX_NOTIFICATIONS = 50


class MatchingDashboard:
    def __init__(
        self,
        config: MatchingConfiguration,
        config_store: ConfigurationStore,
        snapshot_store: SnapshotStore,
        matching_service: MatchingService,
        dispatcher: InvitationDispatcher,
        compute_timeout_seconds: float = COMPUTE_TIMEOUT_SECONDS,
    ):
        self.config = config
        self.config_store = config_store
        self.snapshot_store = snapshot_store
        self.matching_service = matching_service
        self.dispatcher = dispatcher
        self.compute_timeout_seconds = compute_timeout_seconds

        self.selected_request_id: Optional[str] = None
        self.snapshot: Optional[MatchingSnapshot] = None
        self.snapshot_status = "not_loaded"
        self.last_dispatch: Optional[DispatchResult] = None
        self.notifications: List[Notification] = []
        self._computing = False
        self._dispatching = False

    @property
    def state(self) -> str:
        if self._computing:
            return "computing"
        return "selected" if self.selected_request_id else "none_selected"

    def _notify(self, title: str, description: str = "", variant: str = "default") -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self.notifications.append(notification)
        del self.notifications[:-MAX_NOTIFICATIONS]
        return notification

    async def _refresh_snapshot(self, request_id: str, keep_on_failure: bool = False) -> Optional[Notification]:
        try:
            snapshot = await self.snapshot_store.get_latest_snapshot(request_id)
        except MatchingServiceError as e:
            logger.error(f"Snapshot lookup failed for request {request_id}: {e.message}")
            if not keep_on_failure:
                self.snapshot = None
                self.snapshot_status = "lookup_failed"
            return self._notify("Error loading matches", e.message, "destructive")

        self.snapshot = snapshot
        self.snapshot_status = "loaded" if snapshot else "not_computed"
        return None

    async def select_request(self, request_id: Optional[str]) -> Optional[Notification]:
        """Select a request (None clears the selection) and load its latest snapshot"""
        if self._computing and request_id != self.selected_request_id:
            return self._notify(
                "Matching in progress",
                "Wait for the current computation to finish before switching requests",
                "warning",
            )

        self.selected_request_id = request_id
        self.snapshot = None
        self.last_dispatch = None
        if request_id is None:
            self.snapshot_status = "not_loaded"
            return None
        return await self._refresh_snapshot(request_id)

    async def compute(self, force_recompute: bool = False) -> Notification:
        if self.selected_request_id is None:
            return self._notify("No request selected", "Select a request before computing matches", "warning")
        if self._computing:
            logger.info(f"Ignoring compute trigger for {self.selected_request_id}: already computing")
            return self._notify("Matching in progress", "A computation is already running for this request", "warning")

        request_id = self.selected_request_id
        self._computing = True
        try:
            result = await asyncio.wait_for(
                self.matching_service.compute_matching(request_id, force_recompute=force_recompute),
                timeout=self.compute_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Computing matches for {request_id} timed out after {self.compute_timeout_seconds:g}s")
            return self._notify(
                "Error computing matches",
                f"Matching did not finish within {self.compute_timeout_seconds:g} seconds",
                "destructive",
            )
        except MatchingServiceError as e:
            return self._notify("Error computing matches", e.message, "destructive")
        except Exception as e:
            logger.error(f"Unexpected error computing matches for {request_id}: {e}", exc_info=True)
            return self._notify("Error computing matches", str(e), "destructive")
        finally:
            self._computing = False

        # a failed re-fetch keeps whatever is on screen
        error = await self._refresh_snapshot(request_id, keep_on_failure=True)
        if error is not None:
            return error
        return self._notify("Matching Complete", result.message)

    async def recompute(self) -> Notification:
        return await self.compute(force_recompute=True)

    async def send_invitations(self, max_invites: Optional[int] = None) -> Notification:
        """Invite every displayed candidate in one bulk action"""
        if self.selected_request_id is None or self.snapshot is None or not self.snapshot.candidates:
            return self._notify("No candidates to invite", "Compute matches before sending invitations", "warning")
        if self._dispatching:
            return self._notify("Invitations in progress", "Invitations are already being sent", "warning")

        candidates = sort_candidates(self.snapshot.candidates)
        self._dispatching = True
        try:
            result = await self.dispatcher.send_invitations(
                self.selected_request_id,
                [c.user_id for c in candidates],
                max_invites=max_invites,
                scores={c.user_id: c.score for c in candidates},
            )
        except MatchingServiceError as e:
            return self._notify("Error sending invitations", e.message, "destructive")
        except Exception as e:
            logger.error(f"Unexpected error sending invitations for {self.selected_request_id}: {e}", exc_info=True)
            return self._notify("Error sending invitations", str(e), "destructive")
        finally:
            self._dispatching = False

        self.last_dispatch = result
        if result.confirmed == 0 and result.errors:
            return self._notify(
                "Error sending invitations",
                f"{len(result.errors)} of {result.requested} invitations failed",
                "destructive",
            )
        if result.confirmed == 0:
            return self._notify(
                "No invitations sent",
                "All selected experts have already been invited",
                "warning",
            )
        description = f"Sent {result.confirmed} invitations"
        if result.errors:
            description += f"; {len(result.errors)} failed"
        return self._notify("Invitations sent", description)

    async def reload_configuration(self) -> MatchingConfiguration:
        # load_configuration falls back to defaults instead of raising
        self.config = await self.config_store.load_configuration()
        return self.config

    async def save_configuration(
        self,
        config: MatchingConfiguration,
        expected_version: Optional[int] = None,
    ) -> Notification:
        config = config.clamp_quote_thresholds()
        try:
            await self.config_store.update_configuration(config, expected_version=expected_version)
        except ConfigurationConflictError as e:
            await self.reload_configuration()
            return self._notify("Settings not saved", e.message, "destructive")
        except ConfigurationSaveError as e:
            await self.reload_configuration()
            return self._notify(
                "Error saving settings",
                f"{e.message}. The configuration may be partially updated; review it before saving again.",
                "destructive",
            )
        except Exception as e:
            logger.error(f"Unexpected error saving matching settings: {e}", exc_info=True)
            await self.reload_configuration()
            return self._notify("Error saving settings", str(e), "destructive")

        await self.reload_configuration()
        check = self.config.check_weights()
        if not check.is_valid:
            return self._notify("Settings saved", check.warning, "warning")
        return self._notify("Settings saved", "Matching configuration updated")

    def view(self) -> DashboardView:
        snapshot = self.snapshot
        call_to_action = None
        if self.selected_request_id and self.snapshot_status == "not_computed":
            call_to_action = COMPUTE_CALL_TO_ACTION
        return DashboardView(
            state=self.state,
            selected_request_id=self.selected_request_id,
            snapshot_status=self.snapshot_status,
            snapshot_id=snapshot.snapshot_id if snapshot else None,
            snapshot_created_at=snapshot.created_at if snapshot else None,
            algorithm_version=snapshot.algorithm_version if snapshot else None,
            candidates=sort_candidates(snapshot.candidates) if snapshot else [],
            call_to_action=call_to_action,
            configuration=self.config,
            weight_check=self.config.check_weights(),
            last_dispatch=self.last_dispatch,
            notifications=list(self.notifications),
        )
