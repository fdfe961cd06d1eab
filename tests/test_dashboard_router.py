import pytest
from datetime import timedelta
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from marketplace_matching.services.dashboard_sessions import dashboard_sessions
from tests.mocks import make_cursor, snapshot_doc


@pytest.fixture
def test_app():
    from fastapi import FastAPI
    from marketplace_matching.routers import dashboard

    app = FastAPI()
    app.include_router(dashboard.router)
    return app


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


@pytest.fixture
def mock_db():
    with patch('marketplace_matching.routers.dashboard.admin_settings_coll') as settings, \
            patch('marketplace_matching.routers.dashboard.snapshots_coll') as snapshots, \
            patch('marketplace_matching.routers.dashboard.invites_coll') as invites, \
            patch('marketplace_matching.routers.dashboard.notifications_coll') as notifications:
        settings.find.return_value = make_cursor([])
        snapshots.find.return_value = make_cursor([])
        invites.find.return_value = make_cursor([])
        invites.insert_one = AsyncMock()
        notifications.insert_many = AsyncMock()
        yield {"settings": settings, "snapshots": snapshots, "invites": invites}


class TestDashboardRouter:
    """Test cases for dashboard sessions over HTTP"""

    def test_open_and_close_session(self, client, mock_db):
        response = client.post("/api/dashboard/sessions")
        assert response.status_code == 200
        session_id = response.json()["session_id"]
        assert response.json()["view"]["state"] == "none_selected"

        assert client.get(f"/api/dashboard/sessions/{session_id}").status_code == 200
        assert client.delete(f"/api/dashboard/sessions/{session_id}").status_code == 200
        assert client.get(f"/api/dashboard/sessions/{session_id}").status_code == 404

    @patch('marketplace_matching.routers.dashboard.DASHBOARD_IDLE_MINUTES', 30)
    def test_opening_a_session_drops_idle_ones(self, client, mock_db):
        idle_id = client.post("/api/dashboard/sessions").json()["session_id"]
        active_id = client.post("/api/dashboard/sessions").json()["session_id"]
        dashboard_sessions.get(idle_id).last_seen_at -= timedelta(minutes=45)
        dashboard_sessions.get(active_id).last_seen_at -= timedelta(minutes=10)

        client.post("/api/dashboard/sessions")

        assert client.get(f"/api/dashboard/sessions/{idle_id}").status_code == 404
        assert client.get(f"/api/dashboard/sessions/{active_id}").status_code == 200

    def test_unknown_session(self, client):
        response = client.post("/api/dashboard/sessions/nope/compute")

        assert response.status_code == 404

    def test_select_request_without_snapshot(self, client, mock_db):
        session_id = client.post("/api/dashboard/sessions").json()["session_id"]

        response = client.post(f"/api/dashboard/sessions/{session_id}/select", json={"request_id": "req-1"})

        assert response.status_code == 200
        view = response.json()["view"]
        assert view["call_to_action"] == "Compute matches"
        assert response.json()["notification"] is None

    def test_select_then_invite(self, client, mock_db):
        mock_db["snapshots"].find.return_value = make_cursor([snapshot_doc()])
        session_id = client.post("/api/dashboard/sessions").json()["session_id"]
        client.post(f"/api/dashboard/sessions/{session_id}/select", json={"request_id": "req-1"})

        response = client.post(f"/api/dashboard/sessions/{session_id}/invitations", json={})

        assert response.status_code == 200
        assert response.json()["notification"]["description"] == "Sent 3 invitations"
        assert response.json()["view"]["last_dispatch"]["confirmed"] == 3

    def test_save_configuration_reports_weight_warning(self, client, mock_db):
        settings = mock_db["settings"]
        settings.find_one_and_update = AsyncMock(return_value={"setting_key": "matching_config_version", "setting_value": 1})
        settings.update_one = AsyncMock()
        session_id = client.post("/api/dashboard/sessions").json()["session_id"]
        settings.find.return_value = make_cursor([
            {"setting_key": "matching_weights", "setting_value": {"skills": 0.4}},
        ])

        response = client.put(
            f"/api/dashboard/sessions/{session_id}/configuration",
            json={"weights": {"skills": 0.4}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["notification"]["variant"] == "warning"
        assert body["view"]["weight_check"]["warning"] == "Weights must sum to 1.0. Current total: 0.4"
