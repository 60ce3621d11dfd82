import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from config import settings
from services.form_session import FormSession
from utils.errors import SessionClosedError

logger = logging.getLogger(__name__)


class SessionRegistry:
    """In-memory home of the open form sessions, keyed by session id."""

    def __init__(self, idle_minutes: Optional[int] = None):
        self.idle_minutes = settings.SESSION_IDLE_MINUTES if idle_minutes is None else idle_minutes
        self._sessions: Dict[str, FormSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: FormSession) -> FormSession:
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> FormSession:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            raise SessionClosedError(f"Form session {session_id} does not exist or was closed")
        # Reads count as activity for the idle sweep
        session.last_activity = datetime.now(timezone.utc)
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def sweep_idle(self, now: Optional[datetime] = None) -> List[str]:
        """Closes sessions untouched for longer than the idle window; returns their ids."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=self.idle_minutes)
        expired = [sid for sid, s in self._sessions.items() if s.closed or s.last_activity < cutoff]
        for session_id in expired:
            self.close(session_id)
        if expired:
            logger.info(f"🧹 Closed {len(expired)} idle form session(s)")
        return expired
