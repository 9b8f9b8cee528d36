"""
Agent module - the orchestration core.

Includes:
- TurnDriver / TurnExecution: drive one turn through model and tools
- ConversationContext: messages submitted to the model
- StreamAdapter: expose a turn as cancellable text chunks
"""

from .core import (
    DEFAULT_SYSTEM_PROMPT,
    ConversationContext,
    TurnDriver,
    TurnExecution,
    TurnState,
)
from .stream import StreamAdapter

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "ConversationContext",
    "TurnDriver",
    "TurnExecution",
    "TurnState",
    "StreamAdapter",
    "build_driver",
]


def build_driver(settings, store, llm=None) -> TurnDriver:
    """Assemble a driver with the finance tools from settings."""
    from ..llm import create_llm
    from ..tools import ToolRegistry, create_finance_tools

    return TurnDriver(
        store=store,
        tools=ToolRegistry(create_finance_tools()),
        llm=llm or create_llm(settings=settings),
        max_tool_dispatches=settings.max_tool_dispatches,
        max_context_turns=settings.max_context_turns,
    )
