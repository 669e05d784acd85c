"""Record mixin exposing AI capabilities over the record's own fields.

A record opts in by inheriting :class:`HasAICapabilities` and exposing an
``ai_service`` attribute (or property) holding an :class:`AIService`. Empty
or missing fields short-circuit to a neutral result without any network
call.
"""

from __future__ import annotations

__all__ = ["HasAICapabilities"]

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from aibridge.core.types import (
    UNKNOWN_CATEGORY,
    ClassificationResult,
    EntityResult,
    SentimentCategory,
    SentimentResult,
)
from aibridge.llm import prompts

if TYPE_CHECKING:
    from aibridge.llm.service import AIService


class HasAICapabilities:
    """Mixin adding AI helpers to a record object.

    Example::

        @dataclass
        class Review(HasAICapabilities):
            body: str
            ai_service: AIService

        sentiment = await review.analyze_sentiment_of("body")
    """

    def _field_text(self, attribute: str) -> str:
        value = self.get(attribute) if isinstance(self, Mapping) else None
        if value is None:
            value = getattr(self, attribute, None)
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    def _service(self) -> AIService:
        service = getattr(self, "ai_service", None)
        if service is None and isinstance(self, Mapping):
            service = self.get("ai_service")
        if service is None:
            raise AttributeError(
                f"{type(self).__name__} has no ai_service; set one before calling AI helpers"
            )
        return service

    async def complete_text(
        self,
        attribute: str,
        prompt_template: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        """Generate text from a field, optionally through a ``%s`` template."""
        value = self._field_text(attribute)
        if not value:
            return ""
        prompt = prompt_template % value if prompt_template else value
        return await self._service().generate_text(prompt, options)

    async def embed_attribute(
        self, attribute: str, options: dict[str, Any] | None = None
    ) -> list[float]:
        """Embed a field; returns the field's single vector."""
        value = self._field_text(attribute)
        if not value:
            return []
        vectors = await self._service().generate_embeddings(value, options)
        return vectors[0] if vectors else []

    async def analyze_sentiment_of(
        self, attribute: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        value = self._field_text(attribute)
        if not value:
            return SentimentResult(score=0.0, category=SentimentCategory.NEUTRAL)
        return await self._service().analyze_sentiment(value, options)

    async def classify_attribute(
        self,
        attribute: str,
        categories: Sequence[str],
        options: dict[str, Any] | None = None,
    ) -> ClassificationResult:
        value = self._field_text(attribute)
        if not value:
            return ClassificationResult(
                category=str(categories[0]) if categories else UNKNOWN_CATEGORY,
                confidence=0.0,
            )
        return await self._service().classify_text(value, categories, options)

    async def extract_entities_from(
        self, attribute: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        value = self._field_text(attribute)
        if not value:
            return []
        return await self._service().extract_entities(value, options)

    async def generate_image_from(
        self, attribute: str, options: dict[str, Any] | None = None
    ) -> str:
        value = self._field_text(attribute)
        if not value:
            return ""
        return await self._service().generate_image(value, options)

    async def summarize_attribute(
        self,
        attribute: str,
        max_length: int = 100,
        options: dict[str, Any] | None = None,
    ) -> str:
        value = self._field_text(attribute)
        if not value:
            return ""
        return await self._service().generate_text(
            prompts.summarize_prompt(value, max_length), options
        )

    async def translate_attribute(
        self,
        attribute: str,
        target_language: str,
        options: dict[str, Any] | None = None,
    ) -> str:
        value = self._field_text(attribute)
        if not value:
            return ""
        return await self._service().generate_text(
            prompts.translate_prompt(value, target_language), options
        )
