"""
Service configuration.

All settings can be overridden via environment variables with the
CHAT_RELAY_ prefix or a ``.env`` file. ``OPENAI_API_KEY`` and ``PORT`` are
also read unprefixed.

Usage:
    from chat_relay.config import get_settings

    settings = get_settings()
    print(settings.port)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PREAMBLE = "You are a helpful, concise assistant for Bazaarika."


class Settings(BaseSettings):
    """Configuration for the chat relay service."""

    model_config = SettingsConfigDict(
        env_prefix="CHAT_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Provider
    openai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("OPENAI_API_KEY", "CHAT_RELAY_OPENAI_API_KEY", "openai_api_key"),
    )
    openai_base_url: str = "https://api.openai.com"
    default_model: str = "gpt-4o-mini"
    system_preamble: str = DEFAULT_SYSTEM_PREAMBLE
    upstream_timeout_s: float = 60.0

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=3000, validation_alias=AliasChoices("PORT", "CHAT_RELAY_PORT", "port"))
    heartbeat_interval_s: float = 15.0
    static_dir: str = "public"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # Catalog context
    sitemap_url: str | None = None
    catalog_api_key: str | None = None
    context_max_snippets: int = 5

    @field_validator("heartbeat_interval_s")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("heartbeat_interval_s must be positive")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
