"""Core types and errors shared by every aibridge component."""

from aibridge.core.errors import AIError, ErrorKind, NoProvidersError, ProviderError
from aibridge.core.types import (
    UNKNOWN_CATEGORY,
    CallConfig,
    Capability,
    CapabilityRequest,
    ClassificationResult,
    EntityResult,
    SentimentCategory,
    SentimentResult,
    TokenUsageSummary,
    UsageRecord,
    UsageStatus,
)

__all__ = [
    "UNKNOWN_CATEGORY",
    "AIError",
    "CallConfig",
    "Capability",
    "CapabilityRequest",
    "ClassificationResult",
    "EntityResult",
    "ErrorKind",
    "NoProvidersError",
    "ProviderError",
    "SentimentCategory",
    "SentimentResult",
    "TokenUsageSummary",
    "UsageRecord",
    "UsageStatus",
]
