"""Provider registry: adapter lookup by provider name.

Built explicitly at startup (usually via :meth:`ProviderRegistry.from_settings`)
and handed to the dispatcher; there is no global container.
"""

from __future__ import annotations

__all__ = ["ADAPTER_TYPES", "ProviderRegistry"]

from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

import structlog

from aibridge.core.errors import NoProvidersError
from aibridge.providers.anthropic import AnthropicAdapter
from aibridge.providers.base import BaseAdapter, ProviderAdapter
from aibridge.providers.gemini import GeminiAdapter
from aibridge.providers.huggingface import HuggingFaceAdapter
from aibridge.providers.openai import OpenAIAdapter

if TYPE_CHECKING:
    from aibridge.config.settings import AIBridgeSettings, ProviderSettings

logger = structlog.get_logger(__name__)

ADAPTER_TYPES: dict[str, type[BaseAdapter]] = {
    OpenAIAdapter.name: OpenAIAdapter,
    HuggingFaceAdapter.name: HuggingFaceAdapter,
    AnthropicAdapter.name: AnthropicAdapter,
    GeminiAdapter.name: GeminiAdapter,
}


def _build_adapter(name: str, settings: ProviderSettings) -> ProviderAdapter:
    adapter_type = ADAPTER_TYPES.get(name)
    if adapter_type is None:
        raise KeyError(f"Unknown provider type {name!r}")
    kwargs = {
        "api_key": settings.api_key,
        "timeout_seconds": settings.timeout_seconds,
        "base_uri": settings.base_uri,
        "default_model": settings.default_model,
        "default_embedding_model": settings.default_embedding_model,
        "default_image_model": settings.default_image_model,
    }
    if adapter_type is OpenAIAdapter:
        kwargs["organization"] = settings.organization
    return adapter_type(**kwargs)


class ProviderRegistry:
    """Mapping of provider name to adapter instance."""

    def __init__(self, adapters: Iterable[ProviderAdapter] = ()) -> None:
        self._adapters: dict[str, ProviderAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    @classmethod
    def from_settings(cls, settings: AIBridgeSettings) -> ProviderRegistry:
        """Instantiate one adapter per configured provider.

        Disabled providers are skipped. Providers whose name has no known
        adapter type are skipped with a warning.
        """
        registry = cls()
        for name, provider_settings in settings.providers.items():
            if not provider_settings.enabled:
                logger.debug("provider_disabled", provider=name)
                continue
            if name not in ADAPTER_TYPES:
                logger.warning("provider_type_unknown", provider=name)
                continue
            registry.register(_build_adapter(name, provider_settings), name=name)
        return registry

    def register(self, adapter: ProviderAdapter, *, name: str | None = None) -> None:
        """Register ``adapter`` under ``name`` (defaults to ``adapter.name``).

        Re-registering a name replaces the previous adapter.
        """
        key = name or adapter.name
        self._adapters[key] = adapter
        logger.debug("provider_registered", provider=key, adapter=type(adapter).__name__)

    def unregister(self, name: str) -> None:
        """Remove a provider.

        Raises:
            KeyError: If the provider does not exist.
        """
        if name not in self._adapters:
            raise KeyError(f"Provider {name!r} not found")
        del self._adapters[name]

    def get(self, name: str | None) -> ProviderAdapter:
        """Return the adapter registered under ``name``.

        Raises:
            NoProvidersError: If nothing is registered under ``name``.
        """
        adapter = self._adapters.get(name) if name else None
        if adapter is None:
            raise NoProvidersError(name, self.names())
        return adapter

    def names(self) -> list[str]:
        return list(self._adapters)

    async def aclose(self) -> None:
        """Close every registered adapter."""
        for adapter in self._adapters.values():
            await adapter.aclose()

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)
