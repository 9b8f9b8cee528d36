"""
Native Google Gemini LLM provider.

Uses the google-generativeai SDK directly, streaming text and function calls
as turn events and reporting safety blocks as model errors.
"""

from typing import Any, AsyncIterator

import structlog

from ..errors import ModelError, ModelTransportError
from .base import (
    BaseLLM,
    ErrorEvent,
    FinalEvent,
    LLMMessage,
    LLMResponse,
    TextEvent,
    ToolCall,
    ToolCallEvent,
    ToolDefinition,
    TurnEvent,
    classify_status,
)

logger = structlog.get_logger()

BLOCKING_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}
GEMINI_SCHEMA_KEYS = {"type", "description", "properties", "required", "items", "enum", "format", "nullable"}


def _to_plain(value: Any) -> Any:
    """Convert proto map/list composites from function call args to plain types."""
    if hasattr(value, "items"):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)) or (
        hasattr(value, "__iter__") and not isinstance(value, (str, bytes))
    ):
        return [_to_plain(v) for v in value]
    return value


def _gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Keep only the JSON Schema keywords Gemini function declarations accept."""
    cleaned = {k: v for k, v in schema.items() if k in GEMINI_SCHEMA_KEYS}
    if "properties" in cleaned:
        cleaned["properties"] = {
            name: _gemini_schema(prop) for name, prop in cleaned["properties"].items()
        }
    if "items" in cleaned:
        cleaned["items"] = _gemini_schema(cleaned["items"])
    return cleaned


class GoogleGeminiLLM(BaseLLM):
    """Native Google Gemini LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self._client = None

    def _get_client(self):
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._client = genai
        return self._client

    @property
    def provider_name(self) -> str:
        return "google"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Gemini format.

        Gemini uses 'user' and 'model' roles, and has a different
        structure for tool calls/results.
        """
        converted = []

        for msg in messages:
            if msg.role == "system":
                continue  # System prompt handled separately

            if msg.role == "tool":
                converted.append({
                    "role": "user",
                    "parts": [{
                        "function_response": {
                            "name": msg.name or "unknown",
                            "response": {"result": msg.content},
                        }
                    }],
                })
            elif msg.role == "assistant":
                parts = []
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    parts.append({
                        "function_call": {
                            "name": tc.name,
                            "args": tc.arguments,
                        }
                    })
                if parts:
                    converted.append({"role": "model", "parts": parts})
            elif msg.role == "user":
                converted.append({
                    "role": "user",
                    "parts": [{"text": msg.content}],
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Gemini function declarations."""
        function_declarations = []

        for tool in tools:
            declaration: dict[str, Any] = {"name": tool.name, "description": tool.description}
            # Gemini rejects OBJECT parameters without properties
            if tool.parameters.get("properties"):
                declaration["parameters"] = _gemini_schema(tool.parameters)
            function_declarations.append(declaration)

        return [{"function_declarations": function_declarations}]

    def _build_model(self, system_prompt: str | None):
        genai = self._get_client()

        model_kwargs: dict[str, Any] = {
            "model_name": self.model,
            "generation_config": {
                "max_output_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
        }
        if system_prompt:
            model_kwargs["system_instruction"] = system_prompt

        return genai.GenerativeModel(**model_kwargs)

    def _translate_exception(self, error: Exception) -> Exception:
        """Split SDK failures into model errors and transport errors."""
        from google.api_core import exceptions as google_exceptions

        if isinstance(error, google_exceptions.GoogleAPICallError):
            code = classify_status(error.code)
            if code is not None:
                return ModelError(error.message or str(error), code=code)
        if type(error).__name__ in ("BlockedPromptException", "StopCandidateException"):
            return ModelError(str(error), code="SAFETY_BLOCKED")
        return ModelTransportError(str(error))

    def _chunk_events(self, chunk: Any, call_index: int) -> list[TurnEvent]:
        """Translate one streamed response chunk into turn events."""
        feedback = getattr(chunk, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", 0):
            reason = getattr(feedback.block_reason, "name", str(feedback.block_reason))
            return [ErrorEvent(code="SAFETY_BLOCKED", message=f"Prompt blocked: {reason}")]

        events: list[TurnEvent] = []
        calls = 0
        for candidate in chunk.candidates or []:
            for part in candidate.content.parts:
                fc = getattr(part, "function_call", None)
                if fc is not None and fc.name:
                    events.append(ToolCallEvent(ToolCall(
                        id=f"gemini_{fc.name}_{call_index + calls}",
                        name=fc.name,
                        arguments=_to_plain(fc.args) if fc.args else {},
                    )))
                    calls += 1
                elif getattr(part, "text", ""):
                    events.append(TextEvent(part.text))

            reason = getattr(candidate.finish_reason, "name", "")
            if reason in BLOCKING_FINISH_REASONS:
                events.append(ErrorEvent(code="SAFETY_BLOCKED", message=f"Response blocked: {reason}"))
        return events

    async def run(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Stream turn events from Gemini."""
        model = self._build_model(system_prompt)

        kwargs: dict[str, Any] = {"contents": self._convert_messages(messages), "stream": True}
        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        call_count = 0
        try:
            response = await model.generate_content_async(**kwargs)
            async for chunk in response:
                for event in self._chunk_events(chunk, call_count):
                    if isinstance(event, ToolCallEvent):
                        call_count += 1
                    yield event
                    if isinstance(event, ErrorEvent):
                        return
        except Exception as e:
            logger.error("Gemini streaming error", error=str(e))
            translated = self._translate_exception(e)
            if isinstance(translated, ModelError):
                yield ErrorEvent(code=translated.code, message=translated.message)
                return
            raise translated from e

        if call_count == 0:
            yield FinalEvent()

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> LLMResponse:
        """Generate a complete response from Gemini."""
        content = ""
        tool_calls: list[ToolCall] = []

        async for event in self.run(messages, tools=tools, system_prompt=system_prompt):
            if isinstance(event, TextEvent):
                content += event.text
            elif isinstance(event, ToolCallEvent):
                tool_calls.append(event.call)
            elif isinstance(event, ErrorEvent):
                raise ModelError(event.message, code=event.code)

        return LLMResponse(content=content, tool_calls=tool_calls, model=self.model)
