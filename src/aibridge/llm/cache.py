"""Response cache: deterministic keys, pluggable stores and the cache strategy.

Keys are a pure function of (operation, input, options) and do not include
the provider, so a cached answer is reused whichever provider produced it.
Stores hold JSON strings; :class:`CacheStrategy` serialises results on the
way in and restores typed results on the way out.
"""

from __future__ import annotations

__all__ = [
    "CACHEABLE_OPERATIONS",
    "CacheStore",
    "CacheStrategy",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "compute_key",
]

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from aibridge.core.types import (
    Capability,
    ClassificationResult,
    EntityResult,
    SentimentResult,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

CACHEABLE_OPERATIONS: frozenset[Capability] = frozenset({Capability.GENERATE_TEXT})

_RESULT_ADAPTERS: dict[Capability, TypeAdapter[Any]] = {
    Capability.GENERATE_TEXT: TypeAdapter(str),
    Capability.GENERATE_EMBEDDINGS: TypeAdapter(list[list[float]]),
    Capability.ANALYZE_SENTIMENT: TypeAdapter(SentimentResult),
    Capability.CLASSIFY_TEXT: TypeAdapter(ClassificationResult),
    Capability.GENERATE_IMAGE: TypeAdapter(str),
    Capability.EXTRACT_ENTITIES: TypeAdapter(list[EntityResult]),
}


def compute_key(operation: str, input: Any, options: dict[str, Any] | None = None) -> str:
    """Create a deterministic cache key for a capability call.

    The triple is serialised as canonical JSON (sorted keys, compact
    separators) so that option ordering never changes the key.

    Args:
        operation: Capability name.
        input: Primary input (string or list of strings).
        options: Call options.

    Returns:
        A key of the form ``ai:<operation>:<sha256 hex>``.
    """
    payload = json.dumps(
        {"operation": str(operation), "input": input, "options": options or {}},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    digest = hashlib.sha256(payload.encode()).hexdigest()
    return f"ai:{operation}:{digest}"


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class CacheStore(Protocol):
    """Key-value backend holding serialised results."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None on miss or expiry."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        """Store a value with optional TTL; last write wins."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def clear(self) -> None:
        ...


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryCacheStore:
    """In-memory LRU store with per-entry TTL expiry.

    Safe to share between threads; each operation holds an internal lock.
    """

    def __init__(self, *, max_entries: int = 1000) -> None:
        """Initialise the store.

        Args:
            max_entries: Maximum number of cached entries (LRU eviction).
        """
        self.max_entries = max_entries
        self._store: OrderedDict[str, tuple[float | None, str]] = OrderedDict()
        self._lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if expires_at is not None and time.monotonic() >= expires_at:
                del self._store[key]
                return None

            # Move to end for LRU
            self._store.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
            elif len(self._store) >= self.max_entries:
                self._store.popitem(last=False)
            self._store[key] = (expires_at, value)

    async def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    async def clear(self) -> None:
        with self._lock:
            self._store.clear()

    @property
    def size(self) -> int:
        """Return the current number of entries, expired ones included."""
        return len(self._store)


# ---------------------------------------------------------------------------
# Redis store
# ---------------------------------------------------------------------------


class RedisCacheStore:
    """Redis-backed store.

    All keys are prefixed with ``key_prefix`` for namespace isolation; the
    TTL is delegated to Redis key expiry.

    Args:
        redis: An ``redis.asyncio.Redis`` connection instance.
        key_prefix: Key prefix for namespace isolation.
    """

    def __init__(
        self,
        redis: Redis,  # type: ignore[type-arg]
        *,
        key_prefix: str = "aibridge:cache:",
    ) -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> str | None:
        result = await self._redis.get(self._full_key(key))
        if result is None:
            return None
        return result if isinstance(result, str) else result.decode("utf-8")

    async def set(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        full_key = self._full_key(key)
        if ttl_seconds:
            await self._redis.set(full_key, value, ex=max(1, int(ttl_seconds)))
        else:
            await self._redis.set(full_key, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._full_key(key))

    async def clear(self) -> None:
        """Delete every key under the store prefix."""
        cursor: int | bytes = 0
        while True:
            cursor, keys = await self._redis.scan(
                cursor=cursor, match=self._full_key("*"), count=100
            )
            if keys:
                await self._redis.delete(*keys)
            if cursor == 0:
                break


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class CacheStrategy:
    """Typed lookup/store on top of a :class:`CacheStore`.

    Store failures are logged and degrade to a miss (lookup) or a no-op
    (store); they never reach the caller.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        *,
        enabled: bool = True,
        ttl_minutes: int = 60,
    ) -> None:
        """Initialise the strategy.

        Args:
            store: Backend store. An :class:`InMemoryCacheStore` is created if omitted.
            enabled: When False, lookups always miss and stores are skipped.
            ttl_minutes: Default entry lifetime; 0 keeps entries until evicted.
        """
        self.backend = store or InMemoryCacheStore()
        self.enabled = enabled
        self.ttl_minutes = ttl_minutes
        self.hits = 0
        self.misses = 0

    @staticmethod
    def compute_key(operation: str, input: Any, options: dict[str, Any] | None = None) -> str:
        return compute_key(operation, input, options)

    @staticmethod
    def is_cacheable(operation: str) -> bool:
        return operation in CACHEABLE_OPERATIONS

    async def lookup(self, key: str) -> Any | None:
        """Return the cached result for ``key``, or None on miss."""
        if not self.enabled:
            return None
        try:
            raw = await self.backend.get(key)
        except Exception as exc:
            logger.warning("cache_lookup_failed", key=key[:40], error=str(exc))
            return None

        if raw is None:
            self.misses += 1
            return None

        try:
            result = self._decode(key, raw)
        except (ValueError, ValidationError) as exc:
            logger.warning("cache_entry_corrupt", key=key[:40], error=str(exc))
            self.misses += 1
            return None

        self.hits += 1
        logger.debug("cache_hit", key=key[:40])
        return result

    async def store(self, key: str, result: Any, ttl_minutes: int | None = None) -> None:
        """Serialise and store ``result`` under ``key``."""
        if not self.enabled:
            return
        minutes = self.ttl_minutes if ttl_minutes is None else ttl_minutes
        try:
            await self.backend.set(key, self._encode(result), minutes * 60 or None)
        except Exception as exc:
            logger.warning("cache_store_failed", key=key[:40], error=str(exc))

    async def invalidate(self, key: str) -> None:
        try:
            await self.backend.delete(key)
        except Exception as exc:
            logger.warning("cache_invalidate_failed", key=key[:40], error=str(exc))

    @staticmethod
    def _encode(result: Any) -> str:
        if isinstance(result, BaseModel):
            return result.model_dump_json()
        if isinstance(result, list) and result and isinstance(result[0], BaseModel):
            return json.dumps([item.model_dump(mode="json") for item in result])
        return json.dumps(result)

    @staticmethod
    def _decode(key: str, raw: str) -> Any:
        parts = key.split(":", 2)
        try:
            adapter = _RESULT_ADAPTERS.get(Capability(parts[1])) if len(parts) == 3 else None
        except ValueError:
            adapter = None
        data = json.loads(raw)
        return adapter.validate_python(data) if adapter is not None else data
