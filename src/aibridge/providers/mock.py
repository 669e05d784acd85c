"""Mock provider adapter for testing.

Provides a deterministic adapter that returns pre-configured text based on
prompt pattern matching, with failure injection and call history tracking
for assertions. Specialised capabilities go through the shared emulation
path, so canned text answers exercise the real parsing heuristics.
"""

from __future__ import annotations

__all__ = ["MockAdapter", "MockCall"]

import hashlib
from collections.abc import Sequence
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from aibridge.core.errors import AIError, ProviderError
from aibridge.core.types import Capability, ClassificationResult, EntityResult, SentimentResult
from aibridge.observability.trace import record_exchange
from aibridge.providers.base import BaseAdapter


class MockCall(BaseModel):
    """A single recorded adapter invocation."""

    capability: Capability
    input: Any
    options: dict[str, Any] = Field(default_factory=dict)


class MockAdapter(BaseAdapter):
    """A scripted adapter for unit and integration tests."""

    name: ClassVar[str] = "mock"
    default_model: ClassVar[str] = "mock"

    def __init__(self, name: str | None = None, *, embedding_dim: int = 8) -> None:
        """Initialise the mock.

        Args:
            name: Provider name to report; lets several mocks stand in for
                distinct providers in a fallback chain.
            embedding_dim: Dimensionality of the deterministic embeddings.
        """
        super().__init__(default_model="mock", default_image_model="mock-image")
        if name is not None:
            self.name = name  # type: ignore[misc]
        self.embedding_dim = embedding_dim
        self._responses: list[tuple[str, str]] = []
        self._default_response = ""
        self._failures: dict[Capability | None, AIError] = {}
        self.call_history: list[MockCall] = []

    # -- scripting ------------------------------------------------------------

    def add_response(self, prompt_pattern: str, response: str) -> None:
        """Register a response for prompts containing ``prompt_pattern``."""
        self._responses.append((prompt_pattern, response))

    def set_default_response(self, response: str) -> None:
        """Set the response used when no pattern matches."""
        self._default_response = response

    def fail_with(self, error: AIError | None = None, capability: Capability | None = None) -> None:
        """Make calls fail with ``error``.

        Args:
            error: Error to raise; defaults to a ``service_unavailable`` error.
            capability: Restrict the failure to one capability; ``None``
                fails every capability.
        """
        self._failures[capability] = error or ProviderError.service_unavailable(self.name)

    def clear_failures(self) -> None:
        self._failures.clear()

    # -- bookkeeping ----------------------------------------------------------

    def calls_for(self, capability: Capability) -> list[MockCall]:
        return [call for call in self.call_history if call.capability == capability]

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    def assert_called_with(self, pattern: str) -> None:
        """Assert that at least one call contained ``pattern`` in its input.

        Raises:
            AssertionError: If no matching call was found.
        """
        for call in self.call_history:
            if pattern in str(call.input):
                return
        inputs = [str(c.input)[:80] for c in self.call_history]
        raise AssertionError(
            f"No call with pattern {pattern!r} found. "
            f"Call history ({len(self.call_history)} calls): {inputs}"
        )

    def _enter(self, capability: Capability, value: Any, options: dict[str, Any] | None) -> None:
        self.call_history.append(
            MockCall(capability=capability, input=value, options=dict(options or {}))
        )
        error = self._failures.get(capability) or self._failures.get(None)
        if error is not None:
            raise error

    # -- contract -------------------------------------------------------------

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        self._enter(Capability.GENERATE_TEXT, prompt, options)
        content = self._default_response
        for pattern, response_text in self._responses:
            if pattern in prompt:
                content = response_text
                break
        record_exchange(
            "mock/generate",
            model=(options or {}).get("model") or self.text_model,
            request={"prompt": prompt},
            response={"text": content},
            usage={
                "prompt_tokens": len(prompt.split()),
                "completion_tokens": len(content.split()),
            },
        )
        return content

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        inputs = input if isinstance(input, list) else [input]
        self._enter(Capability.GENERATE_EMBEDDINGS, inputs, options)
        vectors = []
        for text in inputs:
            digest = hashlib.sha256(text.encode()).digest()
            vectors.append([digest[i] / 255.0 for i in range(self.embedding_dim)])
        return vectors

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        self._enter(Capability.GENERATE_IMAGE, prompt, options)
        return f"https://images.mock.local/{hashlib.sha256(prompt.encode()).hexdigest()[:16]}.png"

    async def analyze_sentiment(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        self._enter(Capability.ANALYZE_SENTIMENT, text, options)
        return await super().analyze_sentiment(text, options)

    async def classify_text(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        self._enter(Capability.CLASSIFY_TEXT, text, options)
        return await super().classify_text(text, categories, options)

    async def extract_entities(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        self._enter(Capability.EXTRACT_ENTITIES, text, options)
        return await super().extract_entities(text, options)
