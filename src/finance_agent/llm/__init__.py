"""
LLM module: the model collaborator behind each turn.

Providers:
- Google Gemini (native SDK, streaming function calls)
- Anthropic Claude (native SDK)
- OpenAI GPT (native SDK)
- OpenRouter (via OpenAI-compatible endpoint)
- Mock (canned responses for demos)
"""

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
    ToolResultEvent,
    TurnEvent,
)
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .mock import MockLLM
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "ErrorEvent",
    "FinalEvent",
    "LLMMessage",
    "LLMResponse",
    "TextEvent",
    "ToolCall",
    "ToolCallEvent",
    "ToolDefinition",
    "ToolResultEvent",
    "TurnEvent",
    "AnthropicLLM",
    "OpenAILLM",
    "MockLLM",
    "create_llm",
]
