"""Tests for cache keys, cache stores and the cache strategy."""

from __future__ import annotations

import asyncio

import fakeredis.aioredis
import pytest

from aibridge.core.types import (
    Capability,
    ClassificationResult,
    EntityResult,
    SentimentCategory,
    SentimentResult,
)
from aibridge.llm.cache import (
    CacheStrategy,
    InMemoryCacheStore,
    RedisCacheStore,
    compute_key,
)


class _BrokenStore:
    """Store whose every operation fails, like an unreachable Redis."""

    async def get(self, key: str) -> str | None:
        raise ConnectionError("store down")

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        raise ConnectionError("store down")

    async def delete(self, key: str) -> None:
        raise ConnectionError("store down")

    async def clear(self) -> None:
        raise ConnectionError("store down")


@pytest.fixture
async def redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fakeredis async connection."""
    r = fakeredis.aioredis.FakeRedis()
    yield r  # type: ignore[misc]
    await r.flushall()
    await r.aclose()


# ---------------------------------------------------------------------------
# compute_key
# ---------------------------------------------------------------------------


class TestComputeKey:
    def test_deterministic(self) -> None:
        k1 = compute_key("generate_text", "hello", {"model": "gpt-4", "temperature": 0.7})
        k2 = compute_key("generate_text", "hello", {"model": "gpt-4", "temperature": 0.7})
        assert k1 == k2

    def test_option_order_irrelevant(self) -> None:
        k1 = compute_key("generate_text", "hello", {"model": "gpt-4", "temperature": 0.7})
        k2 = compute_key("generate_text", "hello", {"temperature": 0.7, "model": "gpt-4"})
        assert k1 == k2

    def test_differs_by_option_value(self) -> None:
        k1 = compute_key("generate_text", "hello", {"temperature": 0.7})
        k2 = compute_key("generate_text", "hello", {"temperature": 0.8})
        assert k1 != k2

    def test_differs_by_input_and_operation(self) -> None:
        base = compute_key("generate_text", "hello")
        assert compute_key("generate_text", "hello!") != base
        assert compute_key("analyze_sentiment", "hello") != base

    def test_none_options_equal_empty(self) -> None:
        assert compute_key("generate_text", "x", None) == compute_key("generate_text", "x", {})

    def test_format(self) -> None:
        key = compute_key("generate_text", "hello")
        prefix, operation, digest = key.split(":")
        assert prefix == "ai"
        assert operation == "generate_text"
        assert len(digest) == 64

    def test_list_input(self) -> None:
        assert compute_key("generate_embeddings", ["a", "b"]) != compute_key(
            "generate_embeddings", ["b", "a"]
        )


# ---------------------------------------------------------------------------
# InMemoryCacheStore
# ---------------------------------------------------------------------------


class TestInMemoryCacheStore:
    async def test_set_and_get(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "v")
        assert await store.get("k") == "v"

    async def test_missing_key(self) -> None:
        assert await InMemoryCacheStore().get("nope") is None

    async def test_last_write_wins(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "one")
        await store.set("k", "two")
        assert await store.get("k") == "two"
        assert store.size == 1

    async def test_lru_eviction(self) -> None:
        store = InMemoryCacheStore(max_entries=2)
        await store.set("a", "1")
        await store.set("b", "2")
        # Touch "a" so "b" becomes least recently used
        await store.get("a")
        await store.set("c", "3")
        assert await store.get("a") == "1"
        assert await store.get("b") is None
        assert await store.get("c") == "3"

    async def test_ttl_expiry(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "v", ttl_seconds=0.01)
        await asyncio.sleep(0.05)
        assert await store.get("k") is None
        assert store.size == 0

    async def test_no_ttl_keeps_entry(self) -> None:
        store = InMemoryCacheStore()
        await store.set("k", "v", ttl_seconds=None)
        await asyncio.sleep(0.01)
        assert await store.get("k") == "v"

    async def test_delete_and_clear(self) -> None:
        store = InMemoryCacheStore()
        await store.set("a", "1")
        await store.set("b", "2")
        await store.delete("a")
        assert await store.get("a") is None
        await store.clear()
        assert store.size == 0


# ---------------------------------------------------------------------------
# RedisCacheStore
# ---------------------------------------------------------------------------


class TestRedisCacheStore:
    async def test_roundtrip(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        store = RedisCacheStore(redis)
        await store.set("k", '"hello"')
        assert await store.get("k") == '"hello"'

    async def test_keys_are_prefixed(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        store = RedisCacheStore(redis, key_prefix="test:")
        await store.set("k", "v")
        assert await redis.get("test:k") == b"v"

    async def test_ttl_delegated_to_redis(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        store = RedisCacheStore(redis)
        await store.set("k", "v", ttl_seconds=120)
        ttl = await redis.ttl("aibridge:cache:k")
        assert 0 < ttl <= 120

    async def test_missing_key(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        assert await RedisCacheStore(redis).get("nope") is None

    async def test_clear_only_touches_prefix(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        store = RedisCacheStore(redis)
        await store.set("a", "1")
        await store.set("b", "2")
        await redis.set("other:key", "keep")
        await store.clear()
        assert await store.get("a") is None
        assert await store.get("b") is None
        assert await redis.get("other:key") == b"keep"

    async def test_delete(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        store = RedisCacheStore(redis)
        await store.set("a", "1")
        await store.delete("a")
        assert await store.get("a") is None


# ---------------------------------------------------------------------------
# CacheStrategy
# ---------------------------------------------------------------------------


class TestCacheStrategy:
    def test_only_text_generation_is_cacheable(self) -> None:
        assert CacheStrategy.is_cacheable(Capability.GENERATE_TEXT)
        assert not CacheStrategy.is_cacheable(Capability.ANALYZE_SENTIMENT)
        assert not CacheStrategy.is_cacheable(Capability.GENERATE_EMBEDDINGS)

    async def test_text_roundtrip_and_counters(self) -> None:
        cache = CacheStrategy()
        key = compute_key("generate_text", "hello")
        assert await cache.lookup(key) is None
        await cache.store(key, "world")
        assert await cache.lookup(key) == "world"
        assert cache.hits == 1
        assert cache.misses == 1

    async def test_typed_results_restored(self) -> None:
        cache = CacheStrategy()
        sentiment_key = compute_key("analyze_sentiment", "great")
        await cache.store(
            sentiment_key, SentimentResult(score=0.9, category=SentimentCategory.POSITIVE)
        )
        restored = await cache.lookup(sentiment_key)
        assert isinstance(restored, SentimentResult)
        assert restored.category == SentimentCategory.POSITIVE

        classify_key = compute_key("classify_text", "x")
        await cache.store(classify_key, ClassificationResult(category="a", confidence=0.5))
        assert isinstance(await cache.lookup(classify_key), ClassificationResult)

        entities_key = compute_key("extract_entities", "Apple")
        await cache.store(entities_key, [EntityResult(entity="Apple", type="ORG", score=0.9)])
        entities = await cache.lookup(entities_key)
        assert isinstance(entities[0], EntityResult)
        assert entities[0].entity == "Apple"

    async def test_disabled_never_hits(self) -> None:
        store = InMemoryCacheStore()
        cache = CacheStrategy(store, enabled=False)
        key = compute_key("generate_text", "hello")
        await cache.store(key, "world")
        assert store.size == 0
        assert await cache.lookup(key) is None

    async def test_ttl_minutes_passed_to_store(self, redis: fakeredis.aioredis.FakeRedis) -> None:
        cache = CacheStrategy(RedisCacheStore(redis), ttl_minutes=2)
        await cache.store("ai:generate_text:abc", "x")
        ttl = await redis.ttl("aibridge:cache:ai:generate_text:abc")
        assert 60 < ttl <= 120

    async def test_store_failure_is_swallowed(self) -> None:
        cache = CacheStrategy(_BrokenStore())
        key = compute_key("generate_text", "hello")
        await cache.store(key, "world")
        assert await cache.lookup(key) is None
        await cache.invalidate(key)

    async def test_corrupt_entry_is_a_miss(self) -> None:
        store = InMemoryCacheStore()
        cache = CacheStrategy(store)
        key = compute_key("analyze_sentiment", "x")
        await store.set(key, "{not json")
        assert await cache.lookup(key) is None
        assert cache.misses == 1

    async def test_invalidate(self) -> None:
        cache = CacheStrategy()
        key = compute_key("generate_text", "hello")
        await cache.store(key, "world")
        await cache.invalidate(key)
        assert await cache.lookup(key) is None
