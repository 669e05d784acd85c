"""Shared type definitions for the aibridge capability layer."""

from __future__ import annotations

__all__ = [
    "UNKNOWN_CATEGORY",
    "CallConfig",
    "Capability",
    "CapabilityRequest",
    "ClassificationResult",
    "EntityResult",
    "SentimentCategory",
    "SentimentResult",
    "TokenUsageSummary",
    "UsageRecord",
    "UsageStatus",
]

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Category returned when a classifier answer cannot be tied to any supplied label.
UNKNOWN_CATEGORY = "unknown"


# --- Capabilities ---


class Capability(StrEnum):
    """Uniform operations exposed identically across providers."""

    GENERATE_TEXT = "generate_text"
    GENERATE_EMBEDDINGS = "generate_embeddings"
    ANALYZE_SENTIMENT = "analyze_sentiment"
    CLASSIFY_TEXT = "classify_text"
    GENERATE_IMAGE = "generate_image"
    EXTRACT_ENTITIES = "extract_entities"


class CapabilityRequest(BaseModel):
    """A single capability invocation, immutable for the duration of a call."""

    model_config = ConfigDict(frozen=True)

    operation: Capability
    primary_input: str | list[str]
    auxiliary_input: Any = None  # category list, target language, ...
    options: dict[str, Any] = Field(default_factory=dict)


class CallConfig(BaseModel):
    """Per-call provider/model selection threaded through the dispatcher."""

    model_config = ConfigDict(frozen=True)

    provider: str | None = None
    model: str | None = None
    caller_id: str | None = None


# --- Results ---


class SentimentCategory(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class SentimentResult(BaseModel):
    """Sentiment score in [-1, 1] with a category consistent with its sign."""

    score: float = Field(default=0.0, ge=-1.0, le=1.0)
    category: SentimentCategory = SentimentCategory.NEUTRAL
    details: dict[str, float] | None = None
    raw_response: str | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> SentimentResult:
        if self.score > 0 and self.category == SentimentCategory.NEGATIVE:
            raise ValueError("positive score cannot carry a negative category")
        if self.score < 0 and self.category == SentimentCategory.POSITIVE:
            raise ValueError("negative score cannot carry a positive category")
        return self


class ClassificationResult(BaseModel):
    """Top category with a confidence in [0, 1] and optional per-label scores."""

    category: str
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    details: dict[str, float] | None = None
    raw_response: str | None = None


class EntityResult(BaseModel):
    """A named entity merged over all of its detections."""

    entity: str
    type: str
    count: int = Field(default=1, ge=1)
    score: float = Field(default=1.0, ge=0.0, le=1.0)


# --- Usage records ---


class UsageStatus(StrEnum):
    SUCCESS = "success"
    ERROR = "error"


class UsageRecord(BaseModel):
    """Append-only log entry for one provider call attempt.

    Field names follow the persisted ``ai_completions`` layout so that an
    external sink can store records without translation.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    provider: str
    model: str
    prompt: str
    completion: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    caller_id: str | None = None
    request_data: dict[str, Any] | None = None
    response_data: Any = None
    execution_time: float | None = None
    status: UsageStatus = UsageStatus.SUCCESS
    error: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @model_validator(mode="before")
    @classmethod
    def _derive_total_tokens(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("total_tokens") is None:
            prompt_tokens = data.get("prompt_tokens")
            completion_tokens = data.get("completion_tokens")
            if prompt_tokens is not None and completion_tokens is not None:
                data = {**data, "total_tokens": prompt_tokens + completion_tokens}
        return data


class TokenUsageSummary(BaseModel):
    """Aggregate token usage over a set of usage records."""

    total_prompt_tokens: int = 0
    total_completion_tokens: int = 0
    total_tokens: int = 0
    request_count: int = 0
    days_active: int = 0
    average_tokens_per_request: float = 0.0
