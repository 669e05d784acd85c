"""Shared test fixtures for aibridge tests."""

from __future__ import annotations

import pytest

from aibridge.llm.cache import CacheStrategy, InMemoryCacheStore
from aibridge.llm.service import AIService
from aibridge.providers.mock import MockAdapter
from aibridge.providers.registry import ProviderRegistry
from aibridge.usage import InMemoryUsageRecorder


@pytest.fixture
def mock_adapter() -> MockAdapter:
    """Scripted adapter registered under the name ``mock``."""
    return MockAdapter()


@pytest.fixture
def recorder() -> InMemoryUsageRecorder:
    return InMemoryUsageRecorder()


@pytest.fixture
def cache() -> CacheStrategy:
    return CacheStrategy(InMemoryCacheStore(max_entries=100), ttl_minutes=60)


@pytest.fixture
def service(
    mock_adapter: MockAdapter,
    cache: CacheStrategy,
    recorder: InMemoryUsageRecorder,
) -> AIService:
    """Dispatcher over a single mock provider with cache and usage recording."""
    return AIService(
        ProviderRegistry([mock_adapter]),
        default_provider="mock",
        cache=cache,
        recorder=recorder,
    )
