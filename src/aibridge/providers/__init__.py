"""Provider adapters behind the uniform capability contract."""

from aibridge.providers.anthropic import AnthropicAdapter
from aibridge.providers.base import BaseAdapter, HTTPAdapter, ProviderAdapter
from aibridge.providers.gemini import GeminiAdapter
from aibridge.providers.huggingface import HuggingFaceAdapter
from aibridge.providers.mock import MockAdapter
from aibridge.providers.openai import OpenAIAdapter
from aibridge.providers.registry import ADAPTER_TYPES, ProviderRegistry

__all__ = [
    "ADAPTER_TYPES",
    "AnthropicAdapter",
    "BaseAdapter",
    "GeminiAdapter",
    "HTTPAdapter",
    "HuggingFaceAdapter",
    "MockAdapter",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
]
