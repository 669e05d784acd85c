"""HuggingFace Inference API adapter.

Every task is served by a model-specific endpoint (``{base_uri}/{model}``).
Sentiment, zero-shot classification and NER use dedicated models natively
and fall back to generated-text emulation when the native endpoint fails or
answers in an unexpected shape. The ``sentiment_model``, ``classification_model``
and ``ner_model`` options pick the native endpoints; ``model`` (or ``llm_model``)
always names the text model, which the emulation path uses.
"""

from __future__ import annotations

__all__ = ["HuggingFaceAdapter"]

import base64
import json
from collections.abc import Sequence
from typing import Any, ClassVar

import structlog

from aibridge.core.errors import ProviderError
from aibridge.core.types import ClassificationResult, EntityResult, SentimentResult
from aibridge.llm import parsing
from aibridge.observability.trace import record_exchange
from aibridge.providers.base import HTTPAdapter

logger = structlog.get_logger(__name__)

_GENERATION_PASSTHROUGH = ("top_k", "top_p", "repetition_penalty")
_NER_PREFIXES = ("B-", "I-")


def _generated_text(data: Any) -> str:
    """Pull generated text out of the various shapes text models return."""
    if isinstance(data, list) and data:
        first = data[0]
        if isinstance(first, dict) and "generated_text" in first:
            return str(first["generated_text"])
        return first if isinstance(first, str) else json.dumps(first)
    if isinstance(data, dict) and "generated_text" in data:
        return str(data["generated_text"])
    return data if isinstance(data, str) else json.dumps(data)


def _mean_pool(tokens: list[list[float]]) -> list[float]:
    width = len(tokens[0])
    if any(len(token) != width for token in tokens):
        raise ValueError("token vectors differ in width")
    return [sum(token[i] for token in tokens) / len(tokens) for i in range(width)]


def _is_vector(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(v, int | float) and not isinstance(v, bool) for v in value
    )


class HuggingFaceAdapter(HTTPAdapter):
    """Adapter for the HuggingFace hosted Inference API."""

    name: ClassVar[str] = "huggingface"
    default_model: ClassVar[str] = "gpt2"
    default_embedding_model: ClassVar[str | None] = "sentence-transformers/all-mpnet-base-v2"
    default_image_model: ClassVar[str | None] = "stabilityai/stable-diffusion-2"
    default_base_uri: ClassVar[str] = "https://api-inference.huggingface.co/models"

    sentiment_model: ClassVar[str] = "distilbert-base-uncased-finetuned-sst-2-english"
    classification_model: ClassVar[str] = "facebook/bart-large-mnli"
    ner_model: ClassVar[str] = "dslim/bert-base-NER"

    def _endpoint(self, model: str) -> str:
        return f"{self.base_uri}/{model}"

    # -- text & embeddings ----------------------------------------------------

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.text_model)
        return_full_text = bool(opts.get("return_full_text", False))

        parameters: dict[str, Any] = {
            "temperature": opts.get("temperature", 0.7),
            "max_length": opts.get("max_tokens", 100),
            "return_full_text": return_full_text,
        }
        for key in _GENERATION_PASSTHROUGH:
            if key in opts:
                parameters[key] = opts[key]

        payload = {
            "inputs": prompt,
            "parameters": parameters,
            "options": {"wait_for_model": opts.get("wait_for_model", True)},
        }
        logger.debug("huggingface_generation_request", model=model, prompt_length=len(prompt))
        data = await self._post_json(self._endpoint(model), payload, model=model)

        text = _generated_text(data)
        if not return_full_text and text.startswith(prompt):
            text = text[len(prompt):]
        return text

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        opts = options or {}
        model = self._resolve_model(opts, self.embedding_model)
        inputs = input if isinstance(input, list) else [input]

        payload = {
            "inputs": inputs,
            "options": {
                "wait_for_model": opts.get("wait_for_model", True),
                "use_cache": opts.get("use_cache", True),
            },
        }
        data = await self._post_json(self._endpoint(model), payload, model=model)

        if _is_vector(data) and len(inputs) == 1:
            data = [data]
        if not isinstance(data, list) or len(data) != len(inputs):
            raise ProviderError.api_error(
                self.name, "Unexpected embeddings response shape", model=model
            )

        vectors: list[list[float]] = []
        for item in data:
            if _is_vector(item):
                vectors.append([float(v) for v in item])
            elif isinstance(item, list) and item and all(_is_vector(t) for t in item):
                # Token-level features: pool into one sentence vector.
                with self._reading(model):
                    vectors.append(_mean_pool(item))
            else:
                raise ProviderError.api_error(
                    self.name, "Unexpected embeddings response shape", model=model
                )
        return vectors

    # -- native specialised tasks ---------------------------------------------

    async def analyze_sentiment(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        opts = options or {}
        model = str(opts.get("sentiment_model") or self.sentiment_model)
        try:
            data = await self._post_json(self._endpoint(model), {"inputs": text}, model=model)
        except ProviderError as exc:
            logger.info("huggingface_sentiment_emulated", model=model, reason=exc.kind)
            return await self.analyze_sentiment_with_llm(text, opts)

        rows = data[0] if isinstance(data, list) and data and isinstance(data[0], list) else data
        result = sentiment_from_rows(rows)
        if result is None:
            logger.info("huggingface_sentiment_emulated", model=model, reason="unexpected_shape")
            return await self.analyze_sentiment_with_llm(text, opts)
        return result

    async def classify_text(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        labels = self._require_categories(categories)
        opts = options or {}
        model = str(opts.get("classification_model") or self.classification_model)
        payload = {"inputs": text, "parameters": {"candidate_labels": labels}}
        try:
            data = await self._post_json(self._endpoint(model), payload, model=model)
        except ProviderError as exc:
            logger.info("huggingface_classification_emulated", model=model, reason=exc.kind)
            return await self.classify_text_with_llm(text, labels, opts)

        scores = _zero_shot_scores(data, labels)
        if not scores:
            logger.info(
                "huggingface_classification_emulated", model=model, reason="unexpected_shape"
            )
            return await self.classify_text_with_llm(text, labels, opts)

        top_category = max(scores, key=scores.__getitem__)
        return ClassificationResult(
            category=top_category,
            confidence=max(0.0, min(1.0, scores[top_category])),
            details=scores,
        )

    async def extract_entities(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        opts = options or {}
        model = str(opts.get("ner_model") or self.ner_model)
        try:
            data = await self._post_json(self._endpoint(model), {"inputs": text}, model=model)
        except ProviderError as exc:
            logger.info("huggingface_ner_emulated", model=model, reason=exc.kind)
            return await self.extract_entities_with_llm(text, opts)

        if not isinstance(data, list):
            logger.info("huggingface_ner_emulated", model=model, reason="unexpected_shape")
            return await self.extract_entities_with_llm(text, opts)

        detections = []
        for item in data:
            if not isinstance(item, dict) or "word" not in item:
                continue
            label = str(item.get("entity_group") or item.get("entity") or "UNKNOWN")
            for prefix in _NER_PREFIXES:
                if label.startswith(prefix):
                    label = label[len(prefix):]
                    break
            detections.append({"entity": item["word"], "type": label, "score": item.get("score")})
        return parsing.merge_entities(detections, min_confidence=self._min_confidence(opts))

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.image_model)
        payload = {"inputs": prompt}
        response = await self._send(self._endpoint(model), payload, model=model)

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type.startswith("image/"):
            content_type = "image/jpeg"
        record_exchange(self._endpoint(model), model=model, request=payload)
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"


def sentiment_from_rows(rows: Any) -> SentimentResult | None:
    """Interpret text-classification output rows as a sentiment result."""
    if not isinstance(rows, list):
        return None
    return parsing.sentiment_from_label_scores(r for r in rows if isinstance(r, dict))


def _zero_shot_scores(data: Any, labels: list[str]) -> dict[str, float]:
    """Return label -> score for labels in ``labels`` from a zero-shot response."""
    pairs: list[tuple[Any, Any]] = []
    if isinstance(data, dict) and isinstance(data.get("labels"), list):
        scores = data.get("scores")
        if isinstance(scores, list) and len(scores) == len(data["labels"]):
            pairs = list(zip(data["labels"], scores, strict=True))
    elif isinstance(data, list):
        pairs = [(row.get("label"), row.get("score")) for row in data if isinstance(row, dict)]

    result: dict[str, float] = {}
    for label, score in pairs:
        if label in labels and isinstance(score, int | float):
            result[str(label)] = float(score)
    return result
