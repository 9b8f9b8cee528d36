"""
Base classes for LLM providers.

A provider is the model collaborator of a turn: it takes the conversation
plus the tool schemas and produces a lazy, finite sequence of turn events.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Literal, Union

from ..errors import ModelError


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class LLMResponse:
    """Response from an LLM."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None


# --------------------------------------------------------------------------- #
# Turn events
# --------------------------------------------------------------------------- #
@dataclass
class TextEvent:
    """Incremental text content."""

    text: str


@dataclass
class ToolCallEvent:
    """The model requests a tool invocation."""

    call: ToolCall


@dataclass
class ToolResultEvent:
    """A tool result echoed back into the turn."""

    call_id: str
    name: str
    output: str
    success: bool = True
    error_code: str | None = None


@dataclass
class FinalEvent:
    """The model has finished the turn."""


@dataclass
class ErrorEvent:
    """An error returned by the model (not a transport failure)."""

    code: str
    message: str


TurnEvent = Union[TextEvent, ToolCallEvent, ToolResultEvent, FinalEvent, ErrorEvent]


def classify_status(status_code: int | None) -> str | None:
    """Map an HTTP status from a provider to a model error code.

    Returns None when the failure belongs to the transport (5xx, unknown),
    which the caller should raise as ModelTransportError instead.
    """
    if status_code is None or status_code >= 500:
        return None
    if status_code == 429:
        return "QUOTA_EXCEEDED"
    if status_code in (401, 403):
        return "PERMISSION_DENIED"
    if status_code in (400, 404, 413, 422):
        return "MALFORMED_REQUEST"
    return "MODEL_ERROR"


class BaseLLM(ABC):
    """Base class for LLM providers."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a response from the LLM.

        Raises ModelError for errors the model returns and
        ModelTransportError when the provider cannot be reached.
        """
        pass

    async def run(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Produce the turn events for one submission.

        The default implementation wraps a single ``generate`` call. Providers
        with native streaming override it.
        """
        try:
            response = await self.generate(messages, tools=tools, system_prompt=system_prompt)
        except ModelError as e:
            yield ErrorEvent(code=e.code, message=e.message)
            return

        if response.content:
            yield TextEvent(response.content)
        for call in response.tool_calls:
            yield ToolCallEvent(call)
        if not response.tool_calls:
            yield FinalEvent()

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
