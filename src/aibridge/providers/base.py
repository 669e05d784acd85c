"""Provider adapter contract and shared emulation behaviour.

Defines the ``ProviderAdapter`` protocol every provider variant satisfies,
a ``BaseAdapter`` that emulates sentiment, classification and entity
extraction on top of text generation, and an ``HTTPAdapter`` base for
providers spoken to directly over HTTP with httpx.
"""

from __future__ import annotations

__all__ = [
    "BaseAdapter",
    "HTTPAdapter",
    "ProviderAdapter",
]

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx
import structlog

from aibridge.core.errors import ProviderError
from aibridge.core.types import (
    Capability,
    ClassificationResult,
    EntityResult,
    SentimentResult,
)
from aibridge.llm import parsing, prompts
from aibridge.observability.trace import record_exchange

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@runtime_checkable
class ProviderAdapter(Protocol):
    """Uniform capability contract implemented by every provider variant."""

    name: str

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        """Generate text for ``prompt``."""
        ...

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        """Embed one or more texts; one vector per input item."""
        ...

    async def analyze_sentiment(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        """Score the sentiment of ``text``."""
        ...

    async def classify_text(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        """Assign ``text`` to one of ``categories``."""
        ...

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        """Generate an image and return its URL or data URI."""
        ...

    async def extract_entities(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        """Extract merged named entities from ``text``."""
        ...

    def get_client(self) -> Any:
        """Return the underlying transport handle."""
        ...

    async def aclose(self) -> None:
        """Release the underlying transport."""
        ...


class BaseAdapter(ABC):
    """Shared adapter behaviour.

    Subclasses must implement :meth:`generate_text`. Specialised capabilities
    default to generated-text emulation; embeddings and images default to a
    ``missing_capability`` error. Subclasses override whatever their
    provider supports natively.
    """

    name: ClassVar[str] = "base"
    default_model: ClassVar[str] = ""
    default_embedding_model: ClassVar[str | None] = None
    default_image_model: ClassVar[str | None] = None

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_uri: str | None = None,
        default_model: str | None = None,
        default_embedding_model: str | None = None,
        default_image_model: str | None = None,
    ) -> None:
        """Initialise shared adapter settings.

        Args:
            api_key: Credential passed through to the provider.
            timeout_seconds: Per-request timeout.
            base_uri: Override for the provider's API root.
            default_model: Text-generation model used when none is requested.
            default_embedding_model: Embedding model used when none is requested.
            default_image_model: Image model used when none is requested.
        """
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.base_uri = base_uri
        self.text_model = default_model or self.default_model
        self.embedding_model = default_embedding_model or self.default_embedding_model
        self.image_model = default_image_model or self.default_image_model

    # -- contract -------------------------------------------------------------

    @abstractmethod
    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        """Generate text for ``prompt``."""

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        raise ProviderError.missing_capability(self.name, Capability.GENERATE_EMBEDDINGS)

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        raise ProviderError.missing_capability(self.name, Capability.GENERATE_IMAGE)

    async def analyze_sentiment(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        return await self.analyze_sentiment_with_llm(text, options)

    async def classify_text(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        labels = self._require_categories(categories)
        return await self.classify_text_with_llm(text, labels, options)

    async def extract_entities(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        return await self.extract_entities_with_llm(text, options)

    def get_client(self) -> Any:
        return None

    async def aclose(self) -> None:
        return None

    # -- emulation ------------------------------------------------------------

    async def analyze_sentiment_with_llm(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        """Emulate sentiment analysis by prompting the text endpoint."""
        response = await self.generate_text(
            prompts.sentiment_prompt(text), self._emulation_options(options)
        )
        return parsing.parse_sentiment(response)

    async def classify_text_with_llm(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        """Emulate classification by prompting the text endpoint."""
        response = await self.generate_text(
            prompts.classification_prompt(text, categories), self._emulation_options(options)
        )
        return parsing.parse_classification(response, categories)

    async def extract_entities_with_llm(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        """Emulate entity extraction by prompting the text endpoint."""
        response = await self.generate_text(
            prompts.entity_prompt(text), self._emulation_options(options)
        )
        return parsing.parse_entities(response, min_confidence=self._min_confidence(options))

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _require_categories(categories: Sequence[str]) -> list[str]:
        labels = [str(c) for c in categories]
        if not labels:
            raise ValueError("categories must not be empty")
        return labels

    @staticmethod
    def _min_confidence(options: dict[str, Any] | None) -> float:
        value = (options or {}).get("min_confidence", parsing.DEFAULT_MIN_CONFIDENCE)
        return float(value)

    def _emulation_options(self, options: dict[str, Any] | None) -> dict[str, Any]:
        """Options for the text call behind an emulated capability.

        ``llm_model`` selects the text model and takes precedence over
        ``model``.
        """
        opts = dict(options or {})
        llm_model = opts.pop("llm_model", None)
        if llm_model:
            opts["model"] = llm_model
        return opts

    def _resolve_model(self, options: dict[str, Any] | None, default: str | None) -> str:
        model = (options or {}).get("model") or default
        if not model:
            raise ProviderError.invalid_model(self.name, "", "No model configured")
        return str(model)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.text_model!r})"


class HTTPAdapter(BaseAdapter):
    """Adapter base for providers called directly over HTTP.

    Owns an ``httpx.AsyncClient`` and maps transport and status failures to
    :class:`ProviderError`.
    """

    default_base_uri: ClassVar[str] = ""

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_uri: str | None = None,
        default_model: str | None = None,
        default_embedding_model: str | None = None,
        default_image_model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            base_uri=(base_uri or self.default_base_uri).rstrip("/"),
            default_model=default_model,
            default_embedding_model=default_embedding_model,
            default_image_model=default_image_model,
        )
        self._client = httpx.AsyncClient(
            headers=self._auth_headers(),
            timeout=timeout_seconds,
            transport=transport,
        )

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def get_client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the upstream error message from a failed response."""
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                return str(error.get("message") or error)
            if error:
                return str(error)
            if data.get("message"):
                return str(data["message"])
        return response.reason_phrase or str(data)

    async def _send(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        model: str | None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.post(url, json=payload, params=params)
        except httpx.TimeoutException as exc:
            raise ProviderError.service_unavailable(
                self.name,
                f"{self.name} request timed out after {self.timeout_seconds}s",
                model=model,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError.api_error(
                self.name, f"{self.name} transport error: {exc}", model=model
            ) from exc

        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                "provider_http_error",
                provider=self.name,
                model=model,
                status_code=response.status_code,
                error=message,
            )
            raise ProviderError.from_status(
                self.name,
                response.status_code,
                f"{self.name} API error: {message}",
                model=model,
                retry_after=response.headers.get("retry-after"),
            )
        return response

    @contextmanager
    def _reading(self, model: str | None) -> Iterator[None]:
        """Turn a malformed response body into an ``api_error``.

        Wraps code that walks a decoded body so a body of the wrong shape
        surfaces as a provider error.
        """
        try:
            yield
        except (AttributeError, TypeError, KeyError, IndexError, ValueError) as exc:
            raise ProviderError.api_error(
                self.name,
                f"{self.name} returned an unexpected response: {exc}",
                model=model,
            ) from exc

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        model: str | None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """POST ``payload`` and return the decoded JSON body."""
        response = await self._send(url, payload, model=model, params=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError.api_error(
                self.name,
                f"{self.name} returned a non-JSON response",
                model=model,
                status_code=response.status_code,
            ) from exc
        with self._reading(model):
            usage = self._extract_usage(data)
        record_exchange(url, model=model, request=payload, response=data, usage=usage)
        return data

    def _extract_usage(self, data: Any) -> dict[str, int]:
        """Return token usage reported in a response body, if any."""
        return {}
