"""
Tests for the matching dashboard coordinator
"""
import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from marketplace_matching.models.matching_config import MatchingConfiguration
from marketplace_matching.models.schemas import (
    Candidate, ComputeMatchingResult, DispatchResult, MatchingSnapshot
)
from marketplace_matching.services.dashboard import MatchingDashboard
from marketplace_matching.services.dashboard_sessions import DashboardSessionManager
from marketplace_matching.utils.exceptions import (
    ConfigurationSaveError, DispatchError, NotFoundError, ScoringError, SnapshotLookupError
)


def snapshot(snapshot_id="snap-1", scores=(0.9, 0.4, 0.7)):
    return MatchingSnapshot(
        snapshot_id=snapshot_id,
        request_id="req-1",
        candidates=[Candidate(user_id=f"u{i}", score=s) for i, s in enumerate(scores, start=1)],
    )


@pytest.fixture
def config_store():
    store = MagicMock()
    store.load_configuration = AsyncMock(return_value=MatchingConfiguration())
    store.update_configuration = AsyncMock(side_effect=lambda cfg, expected_version=None: cfg)
    return store


@pytest.fixture
def snapshot_store():
    store = MagicMock()
    store.get_latest_snapshot = AsyncMock(return_value=None)
    return store


@pytest.fixture
def matching_service():
    service = MagicMock()
    service.compute_matching = AsyncMock(return_value=ComputeMatchingResult(
        request_id="req-1", message="Successfully matched 3 candidates", snapshot_id="snap-1", candidate_count=3
    ))
    return service


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def dashboard(config_store, snapshot_store, matching_service, dispatcher):
    return MatchingDashboard(
        config=MatchingConfiguration(),
        config_store=config_store,
        snapshot_store=snapshot_store,
        matching_service=matching_service,
        dispatcher=dispatcher,
        compute_timeout_seconds=1,
    )


class TestSelection:
    @pytest.mark.asyncio
    async def test_initial_state(self, dashboard):
        view = dashboard.view()
        assert view.state == "none_selected"
        assert view.candidates == []
        assert view.call_to_action is None

    @pytest.mark.asyncio
    async def test_no_snapshot_shows_call_to_action(self, dashboard):
        notification = await dashboard.select_request("req-1")

        view = dashboard.view()
        assert notification is None
        assert view.state == "selected"
        assert view.snapshot_status == "not_computed"
        assert view.call_to_action == "Compute matches"
        assert view.notifications == []

    @pytest.mark.asyncio
    async def test_lookup_failure_is_an_error_not_empty_state(self, dashboard, snapshot_store):
        snapshot_store.get_latest_snapshot = AsyncMock(side_effect=SnapshotLookupError("db down"))

        notification = await dashboard.select_request("req-1")

        view = dashboard.view()
        assert notification.variant == "destructive"
        assert view.snapshot_status == "lookup_failed"
        assert view.call_to_action is None

    @pytest.mark.asyncio
    async def test_candidates_displayed_descending(self, dashboard, snapshot_store):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot(scores=(0.9, 0.4, 0.7)))

        await dashboard.select_request("req-1")

        assert [c.score for c in dashboard.view().candidates] == [0.9, 0.7, 0.4]

    @pytest.mark.asyncio
    async def test_clearing_selection(self, dashboard):
        await dashboard.select_request("req-1")
        await dashboard.select_request(None)

        assert dashboard.view().state == "none_selected"


class TestCompute:
    @pytest.mark.asyncio
    async def test_compute_refreshes_snapshot(self, dashboard, snapshot_store, matching_service):
        await dashboard.select_request("req-1")
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot())

        notification = await dashboard.compute()

        matching_service.compute_matching.assert_awaited_once_with("req-1", force_recompute=False)
        assert notification.title == "Matching Complete"
        assert dashboard.view().snapshot_id == "snap-1"
        assert dashboard.state == "selected"

    @pytest.mark.asyncio
    async def test_recompute_forces(self, dashboard, matching_service):
        await dashboard.select_request("req-1")

        await dashboard.recompute()

        matching_service.compute_matching.assert_awaited_once_with("req-1", force_recompute=True)

    @pytest.mark.asyncio
    async def test_compute_without_selection_is_refused(self, dashboard, matching_service):
        notification = await dashboard.compute()

        assert notification.variant == "warning"
        matching_service.compute_matching.assert_not_called()

    @pytest.mark.asyncio
    async def test_second_trigger_while_computing_is_refused(self, dashboard, matching_service):
        release = asyncio.Event()

        async def slow_compute(request_id, force_recompute=False):
            await release.wait()
            return ComputeMatchingResult(request_id=request_id, message="done")

        matching_service.compute_matching = AsyncMock(side_effect=slow_compute)
        await dashboard.select_request("req-1")

        first = asyncio.create_task(dashboard.compute())
        await asyncio.sleep(0)
        assert dashboard.state == "computing"

        second = await dashboard.compute()
        release.set()
        await first

        assert second.variant == "warning"
        assert matching_service.compute_matching.await_count == 1
        assert dashboard.state == "selected"

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_snapshot(self, dashboard, snapshot_store, matching_service):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot("old"))
        await dashboard.select_request("req-1")
        matching_service.compute_matching = AsyncMock(side_effect=ScoringError("scorer crashed"))

        notification = await dashboard.compute()

        assert notification.variant == "destructive"
        assert "scorer crashed" in notification.description
        assert dashboard.view().snapshot_id == "old"
        assert dashboard.state == "selected"

    @pytest.mark.asyncio
    async def test_timeout_surfaces_error(self, dashboard, matching_service):
        async def hang(request_id, force_recompute=False):
            await asyncio.sleep(10)

        matching_service.compute_matching = AsyncMock(side_effect=hang)
        dashboard.compute_timeout_seconds = 0.05
        await dashboard.select_request("req-1")

        notification = await dashboard.compute()

        assert notification.variant == "destructive"
        assert "0.05 seconds" in notification.description
        assert dashboard.state == "selected"

    @pytest.mark.asyncio
    async def test_refetch_failure_keeps_displayed_snapshot(self, dashboard, snapshot_store):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot("old"))
        await dashboard.select_request("req-1")
        snapshot_store.get_latest_snapshot = AsyncMock(side_effect=SnapshotLookupError("flaky"))

        notification = await dashboard.compute()

        assert notification.variant == "destructive"
        assert dashboard.view().snapshot_id == "old"


class TestSendInvitations:
    @pytest.mark.asyncio
    async def test_reports_confirmed_count(self, dashboard, snapshot_store, dispatcher):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot(scores=(0.9, 0.8, 0.7, 0.6, 0.5)))
        dispatcher.send_invitations = AsyncMock(return_value=DispatchResult(
            request_id="req-1", requested=5, confirmed=3, sent_to=["u1", "u2", "u3"], skipped=["u4", "u5"]
        ))
        await dashboard.select_request("req-1")

        notification = await dashboard.send_invitations()

        assert notification.description == "Sent 3 invitations"
        user_ids = dispatcher.send_invitations.call_args.args[1]
        assert user_ids == ["u1", "u2", "u3", "u4", "u5"]

    @pytest.mark.asyncio
    async def test_all_failed_is_an_error(self, dashboard, snapshot_store, dispatcher):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot())
        dispatcher.send_invitations = AsyncMock(return_value=DispatchResult(
            request_id="req-1", requested=3, confirmed=0, skipped=["u1", "u2", "u3"],
            errors=[f"{u}: insert failed" for u in ("u1", "u2", "u3")],
        ))
        await dashboard.select_request("req-1")

        notification = await dashboard.send_invitations()

        assert notification.variant == "destructive"
        assert notification.description == "3 of 3 invitations failed"

    @pytest.mark.asyncio
    async def test_all_already_invited_is_a_warning(self, dashboard, snapshot_store, dispatcher):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot())
        dispatcher.send_invitations = AsyncMock(return_value=DispatchResult(
            request_id="req-1", requested=3, confirmed=0, skipped=["u1", "u2", "u3"]
        ))
        await dashboard.select_request("req-1")

        notification = await dashboard.send_invitations()

        assert notification.variant == "warning"
        assert "already been invited" in notification.description

    @pytest.mark.asyncio
    async def test_nothing_to_invite(self, dashboard, dispatcher):
        await dashboard.select_request("req-1")
        dispatcher.send_invitations = AsyncMock()

        notification = await dashboard.send_invitations()

        assert notification.variant == "warning"
        dispatcher.send_invitations.assert_not_called()

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_a_notification(self, dashboard, snapshot_store, dispatcher):
        snapshot_store.get_latest_snapshot = AsyncMock(return_value=snapshot())
        dispatcher.send_invitations = AsyncMock(side_effect=DispatchError("invites unavailable"))
        await dashboard.select_request("req-1")

        notification = await dashboard.send_invitations()

        assert notification.variant == "destructive"
        assert dashboard.view().last_dispatch is None


class TestSaveConfiguration:
    @pytest.mark.asyncio
    async def test_saves_clamped_and_reloads(self, dashboard, config_store):
        config_store.load_configuration = AsyncMock(return_value=MatchingConfiguration(shortlist_size_default=5))

        notification = await dashboard.save_configuration(
            MatchingConfiguration(shortlist_size_default=5, max_quotes_per_request=2, min_quotes_before_presenting=4)
        )

        saved = config_store.update_configuration.call_args.args[0]
        assert saved.min_quotes_before_presenting == 2
        assert dashboard.view().configuration.shortlist_size_default == 5
        assert notification.title == "Settings saved"

    @pytest.mark.asyncio
    async def test_unbalanced_weights_warn(self, dashboard, config_store):
        config_store.load_configuration = AsyncMock(return_value=MatchingConfiguration(weights={"skills": 0.5}))

        notification = await dashboard.save_configuration(MatchingConfiguration(weights={"skills": 0.5}))

        assert notification.variant == "warning"
        assert notification.description == "Weights must sum to 1.0. Current total: 0.5"
        assert dashboard.view().weight_check.warning == notification.description

    @pytest.mark.asyncio
    async def test_partial_save_is_reported(self, dashboard, config_store):
        config_store.update_configuration = AsyncMock(side_effect=ConfigurationSaveError(
            "Failed to update shortlist_size_default", written_keys=["matching_weights"],
            failed_key="shortlist_size_default",
        ))

        notification = await dashboard.save_configuration(MatchingConfiguration())

        assert notification.variant == "destructive"
        assert "partially updated" in notification.description
        config_store.load_configuration.assert_awaited()


class TestDashboardSessionManager:
    @pytest.mark.asyncio
    async def test_create_get_close(self, dashboard):
        manager = DashboardSessionManager()

        async def factory():
            return dashboard

        session = await manager.create(factory)
        assert manager.get(session.session_id).dashboard is dashboard

        manager.close(session.session_id)
        with pytest.raises(NotFoundError):
            manager.get(session.session_id)

    @pytest.mark.asyncio
    async def test_prune_idle(self, dashboard):
        manager = DashboardSessionManager()

        async def factory():
            return dashboard

        session = await manager.create(factory)
        session.last_seen_at -= timedelta(hours=2)

        assert manager.prune_idle(timedelta(hours=1)) == [session.session_id]
        assert len(manager) == 0
