"""
Mock LLM provider for running the demo without a valid API key.

Enabled with ``USE_MOCK=1`` or a placeholder ``DUMMY`` provider key. Turns
still go through the session store and the stream adapter, only the model
is canned.
"""

import asyncio
from typing import AsyncIterator

from .base import BaseLLM, FinalEvent, LLMMessage, LLMResponse, TextEvent, ToolDefinition, TurnEvent

MOCK_LINES = [
    "Hello! This is a mock agent response.\n",
    "I can simulate analysis, budgeting, and reports for testing.\n",
    "Try: 'Analyze transactions: ...' or 'Set a budget of $100 for dining.'\n",
]


class MockLLM(BaseLLM):
    """Serves a fixed set of lines with a short delay between them."""

    def __init__(self, delay: float = 0.25, lines: list[str] | None = None):
        super().__init__(api_key="", model="mock")
        self.delay = delay
        self.lines = lines or MOCK_LINES

    @property
    def provider_name(self) -> str:
        return "mock"

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        return LLMResponse(content="".join(self.lines), model=self.model)

    async def run(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        for i, line in enumerate(self.lines):
            if i and self.delay:
                await asyncio.sleep(self.delay)
            yield TextEvent(line)
        yield FinalEvent()
