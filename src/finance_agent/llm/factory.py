"""
LLM factory for creating provider instances.

Supports: Google Gemini (native), Anthropic Claude, OpenAI GPT, OpenRouter,
and the canned mock provider.
"""

import structlog

from ..config import LLMConfig, Settings
from .base import BaseLLM
from .anthropic import AnthropicLLM
from .mock import MockLLM
from .openai import OpenAILLM

logger = structlog.get_logger()


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Provider routing:
    - mock mode -> MockLLM (canned responses, no API key needed)
    - google -> GoogleGeminiLLM (native Gemini SDK)
    - anthropic -> AnthropicLLM (native Anthropic SDK)
    - openai -> OpenAILLM (native OpenAI SDK)
    - openrouter -> OpenAILLM (OpenAI-compatible endpoint)
    """
    if settings is None:
        from ..config import get_settings
        settings = get_settings()

    if settings.mock_mode:
        logger.info("Mock mode enabled, serving canned responses")
        return MockLLM()

    if config is None:
        config = settings.get_llm_config()

    provider = config.provider

    if provider == "google":
        from .google import GoogleGeminiLLM
        return GoogleGeminiLLM(
            api_key=config.api_key,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "anthropic":
        return AnthropicLLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "openai":
        return OpenAILLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "openrouter":
        return OpenAILLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url or "https://openrouter.ai/api/v1",
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
