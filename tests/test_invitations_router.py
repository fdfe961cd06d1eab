import pytest
from datetime import datetime, timedelta
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from tests.mocks import make_cursor


@pytest.fixture
def test_app():
    from fastapi import FastAPI
    from marketplace_matching.routers import invitations

    app = FastAPI()
    app.include_router(invitations.router)
    return app


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


def invite(status="sent", expires_in=timedelta(hours=6)):
    now = datetime.utcnow()
    return {
        "invite_id": "inv-1",
        "request_id": "req-1",
        "user_id": "u1",
        "status": status,
        "expires_at": now + expires_in,
        "created_at": now - timedelta(hours=1),
    }


class TestInvitationsRouter:
    """Test cases for candidate responses and expiry"""

    @patch('marketplace_matching.routers.invitations.invites_coll')
    def test_accept_invitation(self, mock_invites, client):
        mock_invites.find_one = AsyncMock(return_value=invite())
        mock_invites.update_one = AsyncMock()

        response = client.post("/api/invitations/inv-1/respond", json={"action": "accept"})

        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

    @patch('marketplace_matching.routers.invitations.invites_coll')
    def test_respond_to_missing_invitation(self, mock_invites, client):
        mock_invites.find_one = AsyncMock(return_value=None)

        response = client.post("/api/invitations/nope/respond", json={"action": "decline"})

        assert response.status_code == 404

    @patch('marketplace_matching.routers.invitations.invites_coll')
    def test_respond_after_expiry(self, mock_invites, client):
        mock_invites.find_one = AsyncMock(return_value=invite(expires_in=timedelta(hours=-1)))
        mock_invites.update_one = AsyncMock()

        response = client.post("/api/invitations/inv-1/respond", json={"action": "accept"})

        assert response.status_code == 409
        assert response.json()["detail"]["message"] == "Invitation has expired"

    def test_invalid_action(self, client):
        response = client.post("/api/invitations/inv-1/respond", json={"action": "maybe"})

        assert response.status_code == 422

    @patch('marketplace_matching.routers.invitations.invites_coll')
    def test_expire_with_nothing_overdue(self, mock_invites, client):
        mock_invites.find.return_value = make_cursor([])

        response = client.post("/api/invitations/expire")

        assert response.status_code == 200
        assert response.json() == {"expired_count": 0, "rolled_requests": [], "rolled_invitations": 0}
