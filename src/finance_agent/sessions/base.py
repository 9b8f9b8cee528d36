"""
Session store contract and the session data model.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, NamedTuple


class SessionKey(NamedTuple):
    """Address of a session: (application, user, conversation)."""

    app_name: str
    user_id: str
    session_id: str


@dataclass
class ToolCallRecord:
    """One tool invocation made during a turn."""

    name: str
    arguments: dict[str, Any]
    output: str
    success: bool = True
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "arguments": self.arguments,
            "output": self.output,
            "success": self.success,
            "error_code": self.error_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRecord":
        return cls(
            name=data["name"],
            arguments=data.get("arguments") or {},
            output=data.get("output", ""),
            success=data.get("success", True),
            error_code=data.get("error_code"),
        )


@dataclass
class Turn:
    """A completed user-message-to-agent-response exchange."""

    user_message: str
    response: str
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_message": self.user_message,
            "response": self.response,
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Session:
    """Conversation history plus the tool-accessible scratch state."""

    key: SessionKey
    turns: list[Turn] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_name": self.key.app_name,
            "user_id": self.key.user_id,
            "session_id": self.key.session_id,
            "created_at": self.created_at.isoformat(),
            "turns": [t.to_dict() for t in self.turns],
            "state": self.state,
        }


class ResolutionStatus(str, Enum):
    """Whether resolve() found or created the session."""

    CREATED = "created"
    EXISTING = "existing"


@dataclass
class Resolution:
    """Result of an atomic resolve-or-create."""

    session: Session
    status: ResolutionStatus

    @property
    def created(self) -> bool:
        return self.status is ResolutionStatus.CREATED


class SessionHandle:
    """State accessor bound to a single session, handed to tools.

    Writes go straight through to the store, so state committed by a tool
    survives even if the rest of the turn fails.
    """

    def __init__(self, store: "SessionStore", key: SessionKey):
        self._store = store
        self.key = key

    async def get(self, name: str, default: Any = None) -> Any:
        state = await self._store.get_state(self.key)
        return copy.deepcopy(state.get(name, default))

    async def set(self, name: str, value: Any) -> None:
        await self._store.set_state(self.key, name, value)

    async def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(await self._store.get_state(self.key))


class SessionStore(ABC):
    """Durable per-(app, user, conversation) state."""

    async def initialize(self) -> None:
        """Prepare the backing storage."""

    async def close(self) -> None:
        """Release the backing storage."""

    @abstractmethod
    async def resolve(self, key: SessionKey) -> Resolution:
        """Return the session for ``key``, creating it atomically if unseen."""

    @abstractmethod
    async def get(self, key: SessionKey) -> Session | None:
        """Look a session up without creating it."""

    @abstractmethod
    async def append(self, key: SessionKey, turn: Turn) -> None:
        """Append one completed turn. Raises UnknownSession."""

    @abstractmethod
    async def get_state(self, key: SessionKey) -> dict[str, Any]:
        """Read the scratch state. Raises UnknownSession."""

    @abstractmethod
    async def set_state(self, key: SessionKey, name: str, value: Any) -> None:
        """Write one scratch state entry. Raises UnknownSession."""

    def handle(self, key: SessionKey) -> SessionHandle:
        return SessionHandle(self, key)
