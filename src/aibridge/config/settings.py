"""aibridge configuration management using pydantic-settings.

Loads settings from environment variables (with AIBRIDGE_ prefix) and .env
files. Nested settings use '__' as delimiter (e.g.
AIBRIDGE_PROVIDERS__OPENAI__API_KEY=sk-xxx).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseModel):
    """Connection settings for one provider adapter."""

    enabled: bool = True
    api_key: str = ""
    organization: str | None = None
    timeout_seconds: float = 30.0
    base_uri: str | None = None
    default_model: str | None = None
    default_embedding_model: str | None = None
    default_image_model: str | None = None


def _default_providers() -> dict[str, ProviderSettings]:
    return {
        "openai": ProviderSettings(
            default_model="gpt-4",
            default_embedding_model="text-embedding-3-large",
            default_image_model="dall-e-3",
        ),
        "huggingface": ProviderSettings(
            default_model="gpt2",
            default_embedding_model="sentence-transformers/all-mpnet-base-v2",
            default_image_model="stabilityai/stable-diffusion-2",
        ),
        "anthropic": ProviderSettings(default_model="claude-3-5-sonnet-latest"),
        "gemini": ProviderSettings(
            default_model="gemini-1.5-flash",
            default_embedding_model="text-embedding-004",
            default_image_model="imagen-3.0-generate-002",
        ),
    }


class CacheSettings(BaseModel):
    """Response cache settings."""

    enabled: bool = True
    ttl_minutes: int = Field(default=60, ge=0)
    max_entries: int = Field(default=1000, ge=1)


class FallbackSettings(BaseModel):
    """Multi-provider fallback settings."""

    enabled: bool = False
    providers: list[str] = Field(default_factory=lambda: ["openai", "huggingface"])


class UsageLogSettings(BaseModel):
    """Usage logging settings."""

    enabled: bool = True
    channel: str = "aibridge.usage"
    level: str = "INFO"
    format: str = "json"


class StorageSettings(BaseModel):
    """Usage record storage settings."""

    enabled: bool = False
    purge_after_days: int = Field(default=30, ge=1)


class AIBridgeSettings(BaseSettings):
    """Root settings for aibridge.

    Settings are loaded from environment variables with the AIBRIDGE_ prefix
    and from .env files. Nested settings use '__' as delimiter.

    Examples:
        AIBRIDGE_DEFAULT_PROVIDER=huggingface
        AIBRIDGE_PROVIDERS__OPENAI__API_KEY=sk-xxx
        AIBRIDGE_FALLBACK__ENABLED=true
        AIBRIDGE_LOG__LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="AIBRIDGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    default_provider: str = "openai"
    providers: dict[str, ProviderSettings] = Field(default_factory=_default_providers)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    log: UsageLogSettings = Field(default_factory=UsageLogSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @field_validator("providers", mode="before")
    @classmethod
    def _merge_provider_defaults(cls, value: Any) -> Any:
        """Layer configured providers over the built-in ones, field by field.

        Setting one key (e.g. AIBRIDGE_PROVIDERS__OPENAI__API_KEY) keeps the
        other providers and the remaining defaults of that provider. Set
        ``enabled`` to false to drop a built-in provider.
        """
        if not isinstance(value, Mapping):
            return value
        merged: dict[str, Any] = {
            name: defaults.model_dump() for name, defaults in _default_providers().items()
        }
        for name, override in value.items():
            key = str(name).lower()
            if isinstance(override, ProviderSettings):
                override = override.model_dump(exclude_unset=True)
            if key in merged and isinstance(override, Mapping):
                merged[key] = {**merged[key], **override}
            else:
                merged[key] = override
        return merged


def get_settings(**overrides: object) -> AIBridgeSettings:
    """Create an AIBridgeSettings instance with optional overrides."""
    return AIBridgeSettings(**overrides)
