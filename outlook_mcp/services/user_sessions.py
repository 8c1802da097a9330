"""In-memory registry of ephemeral user sessions."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from outlook_mcp.core.errors import ValidationError
from outlook_mcp.models.sessions import UserSession

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _random_user_id() -> str:
    return secrets.token_hex(16)


class UserSessionRegistry:
    """Maps caller-assigned user ids to session payloads for one server process.

    Ids are 16 random bytes, hex encoded, and are not checked against existing
    keys. With ``idle_ttl`` unset, sessions live until the process exits.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _random_user_id,
        idle_ttl: Optional[timedelta] = None,
    ) -> None:
        self._clock = clock
        self._id_factory = id_factory
        self._idle_ttl = idle_ttl
        self._sessions: Dict[str, UserSession] = {}

    def create_session(self, session_data: Optional[Dict[str, Any]] = None) -> str:
        user_id = self._id_factory()
        self.store(user_id, session_data or {})
        logger.debug("Created session for user %s", user_id)
        return user_id

    def store(self, user_id: str, session_data: Dict[str, Any]) -> None:
        if not user_id:
            raise ValidationError("User ID is required")
        self._sessions[user_id] = UserSession(
            user_id=user_id, last_access=self._clock(), data=dict(session_data)
        )

    def fetch(self, user_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(user_id)
        if session is None:
            return None
        now = self._clock()
        if self._is_idle(session, now):
            del self._sessions[user_id]
            logger.debug("Session for user %s expired after inactivity", user_id)
            return None
        session.touch(now)
        return session.data

    def last_access(self, user_id: str) -> Optional[datetime]:
        session = self._sessions.get(user_id)
        return session.last_access if session else None

    def prune(self) -> int:
        """Drop idle sessions; returns how many were removed."""
        now = self._clock()
        stale = [uid for uid, session in self._sessions.items() if self._is_idle(session, now)]
        for uid in stale:
            del self._sessions[uid]
        if stale:
            logger.info("Pruned %d idle sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def _is_idle(self, session: UserSession, now: datetime) -> bool:
        return self._idle_ttl is not None and now - session.last_access > self._idle_ttl


__all__ = ["UserSessionRegistry"]
