"""aibridge: one capability contract over several hosted AI providers."""

from aibridge.capabilities import HasAICapabilities
from aibridge.config.settings import AIBridgeSettings, get_settings
from aibridge.core.errors import AIError, ErrorKind, NoProvidersError, ProviderError
from aibridge.llm.cache import CacheStrategy, InMemoryCacheStore, RedisCacheStore
from aibridge.llm.service import AIService
from aibridge.providers.registry import ProviderRegistry
from aibridge.usage import InMemoryUsageRecorder, LoggingUsageRecorder, UsageRecorder

__version__ = "0.1.0"

__all__ = [
    "AIBridgeSettings",
    "AIError",
    "AIService",
    "CacheStrategy",
    "ErrorKind",
    "HasAICapabilities",
    "InMemoryCacheStore",
    "InMemoryUsageRecorder",
    "LoggingUsageRecorder",
    "NoProvidersError",
    "ProviderError",
    "ProviderRegistry",
    "RedisCacheStore",
    "UsageRecorder",
    "get_settings",
]
