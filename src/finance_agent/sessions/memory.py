"""
Process-lifetime session store.
"""

import threading
from typing import Any

import structlog

from ..errors import UnknownSession
from .base import Resolution, ResolutionStatus, Session, SessionKey, SessionStore, Turn

logger = structlog.get_logger()


class InMemorySessionStore(SessionStore):
    """Keeps sessions in a dict guarded by a lock.

    The lock is never held across an await, so resolve-or-create is a single
    step for both coroutines and threads.
    """

    def __init__(self):
        self._sessions: dict[SessionKey, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    async def resolve(self, key: SessionKey) -> Resolution:
        with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                status = ResolutionStatus.EXISTING
            else:
                session = self._sessions[key] = Session(key=key)
                status = ResolutionStatus.CREATED

        logger.info(
            "Session resolved",
            app_name=key.app_name,
            user_id=key.user_id,
            session_id=key.session_id,
            status=status.value,
            turns=session.turn_count,
        )
        return Resolution(session=session, status=status)

    async def get(self, key: SessionKey) -> Session | None:
        return self._sessions.get(key)

    def _require(self, key: SessionKey) -> Session:
        session = self._sessions.get(key)
        if session is None:
            raise UnknownSession(f"Session {key.session_id!r} for user {key.user_id!r} was never resolved")
        return session

    async def append(self, key: SessionKey, turn: Turn) -> None:
        with self._lock:
            self._require(key).turns.append(turn)

    async def get_state(self, key: SessionKey) -> dict[str, Any]:
        with self._lock:
            return dict(self._require(key).state)

    async def set_state(self, key: SessionKey, name: str, value: Any) -> None:
        with self._lock:
            self._require(key).state[name] = value
