"""
Dashboard Session Manager - one MatchingDashboard per admin session, kept in memory
"""
import os
import uuid
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List

from dotenv import load_dotenv

from marketplace_matching.services.dashboard import MatchingDashboard
from marketplace_matching.utils.exceptions import NotFoundError
from marketplace_matching.utils.logging_config import get_logger

load_dotenv()
DASHBOARD_IDLE_MINUTES = float(os.getenv("DASHBOARD_IDLE_MINUTES", "60"))

logger = get_logger(__name__)

DashboardFactory = Callable[[], Awaitable[MatchingDashboard]]


class DashboardSession:
    def __init__(self, session_id: str, dashboard: MatchingDashboard):
        self.session_id = session_id
        self.dashboard = dashboard
        self.created_at = datetime.utcnow()
        self.last_seen_at = self.created_at


class DashboardSessionManager:
    """In-process registry; sessions do not survive a restart"""

    def __init__(self):
        self._sessions: Dict[str, DashboardSession] = {}

    def __len__(self):
        return len(self._sessions)

    async def create(self, factory: DashboardFactory) -> DashboardSession:
        dashboard = await factory()
        session = DashboardSession(str(uuid.uuid4()), dashboard)
        self._sessions[session.session_id] = session
        logger.info(f"Opened dashboard session {session.session_id}")
        return session

    def get(self, session_id: str) -> DashboardSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(
                "Dashboard session not found",
                resource="dashboard_session",
                resource_id=session_id,
            )
        session.last_seen_at = datetime.utcnow()
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise NotFoundError(
                "Dashboard session not found",
                resource="dashboard_session",
                resource_id=session_id,
            )
        logger.info(f"Closed dashboard session {session_id}")

    def prune_idle(self, max_idle: timedelta) -> List[str]:
        """Drop sessions idle for longer than max_idle; computing dashboards are kept"""
        cutoff = datetime.utcnow() - max_idle
        stale = [
            sid for sid, session in self._sessions.items()
            if session.last_seen_at < cutoff and session.dashboard.state != "computing"
        ]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info(f"Pruned {len(stale)} idle dashboard sessions")
        return stale


dashboard_sessions = DashboardSessionManager()
