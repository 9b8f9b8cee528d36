"""
Shared fixtures: a scripted model collaborator and ready-made drivers.
"""

import asyncio
import copy
from typing import AsyncIterator

import pytest

from finance_agent.agent import TurnDriver
from finance_agent.llm.base import (
    BaseLLM,
    FinalEvent,
    LLMMessage,
    LLMResponse,
    TextEvent,
    ToolCall,
    ToolCallEvent,
    ToolDefinition,
    TurnEvent,
)
from finance_agent.sessions import InMemorySessionStore, SessionKey
from finance_agent.tools import ToolRegistry, create_finance_tools


class ScriptedLLM(BaseLLM):
    """Replays one scripted event list per model submission.

    A script entry that is an exception instance is raised at that point in
    the sequence. Once the scripts run out the last one repeats.
    """

    def __init__(self, *scripts: list, delay: float = 0.0):
        super().__init__(api_key="test", model="scripted")
        self.scripts = list(scripts)
        self.delay = delay
        self.submissions: list[list[LLMMessage]] = []
        self.closed = 0

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        raise NotImplementedError

    async def run(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        index = min(len(self.submissions), len(self.scripts) - 1)
        self.submissions.append(copy.deepcopy(messages))
        try:
            for item in self.scripts[index]:
                if self.delay:
                    await asyncio.sleep(self.delay)
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            self.closed += 1


class CloseFailsLLM(ScriptedLLM):
    """Model whose stream raises while it is being closed."""

    async def run(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        self.submissions.append(copy.deepcopy(messages))
        try:
            yield TextEvent("one")
            yield TextEvent("two")
            yield FinalEvent()
        finally:
            raise ConnectionError("reset while closing")


def text(value: str) -> TextEvent:
    return TextEvent(value)


def call(name: str, call_id: str = "call_1", **arguments) -> ToolCallEvent:
    return ToolCallEvent(ToolCall(id=call_id, name=name, arguments=arguments))


def final() -> FinalEvent:
    return FinalEvent()


@pytest.fixture
def key() -> SessionKey:
    return SessionKey("finance_agent_app", "user-1", "session-1")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(create_finance_tools())


@pytest.fixture
def make_driver(store, registry):
    def _make(llm: BaseLLM, max_tool_dispatches: int = 10) -> TurnDriver:
        return TurnDriver(store=store, tools=registry, llm=llm, max_tool_dispatches=max_tool_dispatches)

    return _make


async def collect(execution) -> list[TurnEvent]:
    """Drain a turn's events."""
    return [event async for event in execution.events()]
