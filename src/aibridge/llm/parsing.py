"""Heuristic parsing of free-form model output into structured results.

Every parser follows the same ordered chain:

1. strict JSON decoding of the response (whole text, a fenced ``json``
   block, or the first balanced object/array embedded in prose);
2. field-level pattern extraction for the expected schema;
3. neutral defaults, with the raw response preserved.

Parsers are pure and never raise; a malformed answer degrades to the
default result instead of failing the capability call.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_MIN_CONFIDENCE",
    "decode_json",
    "merge_entities",
    "normalize_sentiment",
    "parse_classification",
    "parse_entities",
    "parse_sentiment",
    "sentiment_from_label_scores",
]

import json
import math
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from aibridge.core.types import (
    UNKNOWN_CATEGORY,
    ClassificationResult,
    EntityResult,
    SentimentCategory,
    SentimentResult,
)

logger = structlog.get_logger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.5

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_SCORE_RE = re.compile(r'score"?\s*[:=]\s*"?(-?\d+(?:\.\d+)?)', re.IGNORECASE)
_SENTIMENT_LABEL_RE = re.compile(
    r'(?:category|sentiment|label)"?\s*[:=]\s*"?(positive|negative|neutral)\b',
    re.IGNORECASE,
)
_CATEGORY_RE = re.compile(r'category"?\s*[:=]\s*"([^"]+)"', re.IGNORECASE)
_BARE_CATEGORY_RE = re.compile(r"category\s*[:=]\s*([\w\- ]+)", re.IGNORECASE)
_CONFIDENCE_RE = re.compile(r'confidence"?\s*[:=]\s*"?(\d+(?:\.\d+)?)(%?)', re.IGNORECASE)
_ENTITY_PAIR_RE = re.compile(
    r'"entity"\s*:\s*"([^"]+)"\s*,\s*"type"\s*:\s*"([^"]+)"',
    re.IGNORECASE,
)

_SENTIMENT_ALIASES: dict[str, SentimentCategory] = {
    "positive": SentimentCategory.POSITIVE,
    "pos": SentimentCategory.POSITIVE,
    "negative": SentimentCategory.NEGATIVE,
    "neg": SentimentCategory.NEGATIVE,
    "neutral": SentimentCategory.NEUTRAL,
    "neu": SentimentCategory.NEUTRAL,
}


# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------


def decode_json(text: str) -> Any | None:
    """Decode the structured payload of a model response.

    Returns:
        The decoded value, or ``None`` if no JSON payload could be found.
    """
    if not text or not text.strip():
        return None

    stripped = text.strip()
    try:
        return json.loads(stripped)
    except ValueError:
        pass

    fenced = _FENCE_RE.search(stripped)
    if fenced:
        try:
            return json.loads(fenced.group(1).strip())
        except ValueError:
            pass

    decoder = json.JSONDecoder()
    for index, char in enumerate(stripped):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(stripped, index)
        except ValueError:
            continue
        return value
    return None


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------


def _sentiment_category(label: Any) -> SentimentCategory | None:
    if label is None:
        return None
    return _SENTIMENT_ALIASES.get(str(label).strip().lower())


def normalize_sentiment(
    score: float | None,
    category: SentimentCategory | str | None,
    *,
    details: dict[str, float] | None = None,
    raw_response: str | None = None,
) -> SentimentResult:
    """Build a sentiment result whose score and category agree.

    The score is clamped to [-1, 1]. A category that contradicts the sign of
    the score is re-derived from the score.
    """
    value = _clamp(score, -1.0, 1.0) if score is not None else 0.0
    resolved = _sentiment_category(category) or SentimentCategory.NEUTRAL

    if value > 0 and resolved == SentimentCategory.NEGATIVE:
        resolved = SentimentCategory.POSITIVE
    elif value < 0 and resolved == SentimentCategory.POSITIVE:
        resolved = SentimentCategory.NEGATIVE

    return SentimentResult(
        score=value,
        category=resolved,
        details=details,
        raw_response=raw_response,
    )


def parse_sentiment(text: str) -> SentimentResult:
    """Parse a sentiment answer produced by a text-generation model."""
    data = decode_json(text)
    if isinstance(data, list) and data and isinstance(data[0], Mapping):
        data = data[0]
    if isinstance(data, Mapping):
        score = _to_float(data.get("score"))
        category = data.get("category", data.get("sentiment", data.get("label")))
        if score is not None or _sentiment_category(category) is not None:
            return normalize_sentiment(score, category)

    score_match = _SCORE_RE.search(text or "")
    label_match = _SENTIMENT_LABEL_RE.search(text or "")
    if score_match or label_match:
        return normalize_sentiment(
            _to_float(score_match.group(1)) if score_match else None,
            label_match.group(1) if label_match else None,
            raw_response=text,
        )

    logger.debug("sentiment_parse_defaulted", response_length=len(text or ""))
    return normalize_sentiment(None, None, raw_response=text)


def sentiment_from_label_scores(
    label_scores: Iterable[Mapping[str, Any]],
) -> SentimentResult | None:
    """Convert ``[{"label": ..., "score": ...}]`` classifier output to a sentiment.

    The score is P(positive) - P(negative); the category is the most likely
    label. Returns ``None`` when the payload has no usable labels.
    """
    scores: dict[str, float] = {}
    top_label: str | None = None
    top_score = -1.0
    for item in label_scores:
        if not isinstance(item, Mapping):
            continue
        label = str(item.get("label", "")).strip().lower()
        value = _to_float(item.get("score"))
        if not label or value is None:
            continue
        scores[label] = value
        if value > top_score:
            top_score = value
            top_label = label

    if not scores:
        return None

    canonical = {
        str(_SENTIMENT_ALIASES[label]): value
        for label, value in scores.items()
        if label in _SENTIMENT_ALIASES
    }
    positive = canonical.get(SentimentCategory.POSITIVE)
    negative = canonical.get(SentimentCategory.NEGATIVE)
    if positive is not None and negative is not None:
        score = positive - negative
    elif positive is not None:
        score = positive
    elif negative is not None:
        score = -negative
    else:
        score = 0.0

    return normalize_sentiment(score, top_label, details=scores)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def _canonical(label: str) -> str:
    return re.sub(r"[\s_\-]+", "", label).lower()


def _match_category(candidate: Any, categories: Sequence[str]) -> str | None:
    if candidate is None:
        return None
    value = str(candidate).strip().strip("'\".")
    if value in categories:
        return value
    lowered = value.lower()
    for category in categories:
        if category.lower() == lowered:
            return category
    canonical = _canonical(value)
    for category in categories:
        if _canonical(category) == canonical:
            return category
    return None


def _mentioned_category(text: str, categories: Sequence[str]) -> str | None:
    """Return the supplied category mentioned earliest in free text."""
    lowered = text.lower()
    best: tuple[int, str] | None = None
    for category in categories:
        variants = {category.lower(), category.lower().replace("_", " ")}
        for variant in variants:
            position = lowered.find(variant)
            if position >= 0 and (best is None or position < best[0]):
                best = (position, category)
    return best[1] if best else None


def _normalize_confidence(value: float | None, *, percent: bool = False) -> float | None:
    if value is None:
        return None
    if percent or 1.0 < value <= 100.0:
        value = value / 100.0
    return _clamp(value, 0.0, 1.0)


def parse_classification(text: str, categories: Sequence[str]) -> ClassificationResult:
    """Parse a classification answer, constrained to ``categories``.

    The result always names one of ``categories`` (or ``UNKNOWN_CATEGORY``
    when no categories were supplied). A recognised category without a
    stated confidence gets 0.5; an unrecognised answer falls back to the
    first category with confidence 0.
    """
    if not categories:
        return ClassificationResult(category=UNKNOWN_CATEGORY, confidence=0.0, raw_response=text)

    data = decode_json(text)
    if isinstance(data, Mapping):
        category = _match_category(
            data.get("category", data.get("label", data.get("class"))), categories
        )
        if category is not None:
            confidence = _normalize_confidence(
                _to_float(data.get("confidence", data.get("score")))
            )
            return ClassificationResult(
                category=category,
                confidence=0.5 if confidence is None else confidence,
            )

    raw = text or ""
    category = None
    category_match = _CATEGORY_RE.search(raw) or _BARE_CATEGORY_RE.search(raw)
    if category_match:
        category = _match_category(category_match.group(1), categories)
    if category is None:
        category = _mentioned_category(raw, categories)

    if category is not None:
        confidence_match = _CONFIDENCE_RE.search(raw)
        confidence = None
        if confidence_match:
            confidence = _normalize_confidence(
                _to_float(confidence_match.group(1)),
                percent=confidence_match.group(2) == "%",
            )
        return ClassificationResult(
            category=category,
            confidence=0.5 if confidence is None else confidence,
            raw_response=text,
        )

    logger.debug("classification_parse_defaulted", response_length=len(raw))
    return ClassificationResult(category=categories[0], confidence=0.0, raw_response=text)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


def merge_entities(
    detections: Iterable[Mapping[str, Any]],
    *,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> list[EntityResult]:
    """Merge raw entity detections into de-duplicated results.

    Detections scoring below ``min_confidence`` are discarded first. The rest
    are merged on (text, type): counts are summed and the highest score kept.
    Results are sorted by count descending, then score descending.

    Args:
        detections: Mappings with ``entity``, ``type``, optional ``score``
            (default 1.0) and optional ``count`` (default 1).
        min_confidence: Minimum score a detection needs to be kept.
    """
    merged: dict[tuple[str, str], dict[str, Any]] = {}
    for item in detections:
        entity = str(item.get("entity") or "").strip()
        if not entity:
            continue
        entity_type = str(item.get("type") or "UNKNOWN").strip() or "UNKNOWN"
        score = _to_float(item.get("score"))
        score = 1.0 if score is None else _clamp(score, 0.0, 1.0)
        if score < min_confidence:
            continue
        count = item.get("count", 1)
        count = count if isinstance(count, int) and not isinstance(count, bool) and count > 0 else 1

        key = (entity, entity_type)
        existing = merged.get(key)
        if existing is None:
            merged[key] = {"entity": entity, "type": entity_type, "count": count, "score": score}
        else:
            existing["count"] += count
            existing["score"] = max(existing["score"], score)

    ordered = sorted(merged.values(), key=lambda e: (-e["count"], -e["score"]))
    return [EntityResult(**entry) for entry in ordered]


def _entity_fields(item: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "entity": item.get("entity", item.get("text", item.get("word", item.get("name")))),
        "type": item.get("type", item.get("entity_group", item.get("label"))),
        "score": item.get("score", item.get("confidence")),
        "count": item.get("count", 1),
    }


def parse_entities(
    text: str,
    *,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> list[EntityResult]:
    """Parse an entity-extraction answer into merged entity results."""
    data = decode_json(text)
    if isinstance(data, Mapping):
        data = data.get("entities", [data])
    if isinstance(data, list):
        items = [_entity_fields(item) for item in data if isinstance(item, Mapping)]
        if items:
            return merge_entities(items, min_confidence=min_confidence)

    pairs = _ENTITY_PAIR_RE.findall(text or "")
    if pairs:
        return merge_entities(
            ({"entity": entity, "type": kind} for entity, kind in pairs),
            min_confidence=min_confidence,
        )

    logger.debug("entity_parse_defaulted", response_length=len(text or ""))
    return []
