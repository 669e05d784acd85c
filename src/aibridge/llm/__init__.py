"""Text-model helpers: emulation prompts, response parsing and the response cache.

The dispatcher lives in :mod:`aibridge.llm.service`; it is not re-exported
here because provider adapters import this package.
"""

from aibridge.llm.cache import (
    CACHEABLE_OPERATIONS,
    CacheStore,
    CacheStrategy,
    InMemoryCacheStore,
    RedisCacheStore,
    compute_key,
)
from aibridge.llm.parsing import (
    merge_entities,
    normalize_sentiment,
    parse_classification,
    parse_entities,
    parse_sentiment,
    sentiment_from_label_scores,
)

__all__ = [
    "CACHEABLE_OPERATIONS",
    "CacheStore",
    "CacheStrategy",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "compute_key",
    "merge_entities",
    "normalize_sentiment",
    "parse_classification",
    "parse_entities",
    "parse_sentiment",
    "sentiment_from_label_scores",
]
