"""
Configuration management for the Finance Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PLACEHOLDER_API_KEY = "DUMMY"


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["anthropic", "openai", "google", "openrouter"] = "google"
    model: str = "gemini-2.5-flash"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "finance_agent_app"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # LLM Providers (API Keys)
    google_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("google_api_key", "google_genai_api_key"),
        description="Google AI API key for Gemini",
    )
    google_cloud_project: str = Field(default="", description="Google Cloud project (informational)")
    google_cloud_location: str = Field(default="", description="Google Cloud location (informational)")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")

    # Default model settings
    default_provider: Literal["anthropic", "openai", "google", "openrouter"] = "google"
    default_model: str = "gemini-2.5-flash"
    max_tokens: int = 4096
    temperature: float = 0.7

    # Canned responses instead of a real model
    use_mock: bool = Field(default=False, description="Serve canned mock responses")

    # Turn orchestration
    max_tool_dispatches: int = Field(default=10, description="Max tool dispatches per turn")
    max_context_turns: int = Field(default=50, description="Max prior turns sent to the model")

    # Session storage
    session_backend: Literal["memory", "sql"] = "memory"
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/sessions.db",
        description="Database connection URL for the sql session backend",
    )

    # Defaults for turn submissions
    default_user_id: str = "default-user"
    default_session_id: str = "default-session"

    @field_validator("max_tool_dispatches")
    @classmethod
    def check_max_tool_dispatches(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_tool_dispatches must be at least 1")
        return v

    @property
    def provider_api_key(self) -> str:
        """API key of the default provider."""
        return self.get_llm_config().api_key

    @property
    def mock_mode(self) -> bool:
        """Whether canned responses replace the real model."""
        return self.use_mock or self.provider_api_key == PLACEHOLDER_API_KEY

    def missing_required_keys(self) -> list[str]:
        """Environment variables that must be set before serving."""
        if self.mock_mode or self.provider_api_key:
            return []

        env_names = {
            "google": "GOOGLE_GENAI_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }
        return [env_names[self.default_provider]]

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.default_provider

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "google": self.google_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "anthropic": "claude-sonnet-4-20250514",
            "openai": "gpt-4o",
            "google": "gemini-2.5-flash",
            "openrouter": "anthropic/claude-sonnet-4",
        }

        base_url_map = {
            "anthropic": None,
            "openai": None,
            "google": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        # An explicit DEFAULT_MODEL only applies to the default provider
        if provider == self.default_provider and "default_model" in self.model_fields_set:
            model = self.default_model
        else:
            model = model_map.get(provider, self.default_model)

        return LLMConfig(
            provider=provider,  # type: ignore
            model=model,
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
