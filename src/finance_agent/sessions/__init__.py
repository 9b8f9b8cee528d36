"""
Session storage: durable per-(application, user, conversation) state.
"""

from .base import (
    Resolution,
    ResolutionStatus,
    Session,
    SessionHandle,
    SessionKey,
    SessionStore,
    ToolCallRecord,
    Turn,
)
from .memory import InMemorySessionStore
from .sql import SqlSessionStore

__all__ = [
    "Resolution",
    "ResolutionStatus",
    "Session",
    "SessionHandle",
    "SessionKey",
    "SessionStore",
    "ToolCallRecord",
    "Turn",
    "InMemorySessionStore",
    "SqlSessionStore",
    "create_session_store",
]


def create_session_store(settings) -> SessionStore:
    """Build the store selected by ``SESSION_BACKEND``."""
    if settings.session_backend == "sql":
        return SqlSessionStore(settings.database_url)
    return InMemorySessionStore()
