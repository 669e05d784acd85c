"""OpenAI adapter backed by the official OpenAI SDK.

Chat completions, embeddings and image generation are native; sentiment,
classification and entity extraction are emulated through chat completions.
"""

from __future__ import annotations

__all__ = ["OpenAIAdapter"]

import re
from typing import Any, ClassVar

import structlog
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    NotFoundError,
    OpenAIError,
    PermissionDeniedError,
    RateLimitError,
)

from aibridge.core.errors import ProviderError
from aibridge.observability.trace import record_exchange
from aibridge.providers.base import DEFAULT_TIMEOUT_SECONDS, BaseAdapter

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URI = "https://api.openai.com/v1"

# Chat options forwarded verbatim when present.
_CHAT_PASSTHROUGH = (
    "top_p",
    "presence_penalty",
    "frequency_penalty",
    "stop",
    "seed",
    "response_format",
    "user",
)

_CONTEXT_TOKENS_RE = re.compile(
    r"maximum context length is (\d+) tokens.*?(?:resulted in|requested) (\d+) tokens",
    re.IGNORECASE | re.DOTALL,
)
_CONTENT_FILTER_CODES = frozenset({"content_filter", "content_policy_violation"})


def _usage_dict(usage: Any) -> dict[str, int]:
    if usage is None:
        return {}
    result: dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int) and not isinstance(value, bool):
            result[key] = value
    return result


def _dump(response: Any) -> dict[str, Any] | None:
    dump = getattr(response, "model_dump", None)
    if not callable(dump):
        return None
    data = dump()
    return data if isinstance(data, dict) else None


class OpenAIAdapter(BaseAdapter):
    """Adapter for the OpenAI API (and OpenAI-compatible endpoints)."""

    name: ClassVar[str] = "openai"
    default_model: ClassVar[str] = "gpt-4"
    default_embedding_model: ClassVar[str | None] = "text-embedding-3-large"
    default_image_model: ClassVar[str | None] = "dall-e-3"

    def __init__(
        self,
        *,
        api_key: str = "",
        organization: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        base_uri: str | None = None,
        default_model: str | None = None,
        default_embedding_model: str | None = None,
        default_image_model: str | None = None,
        max_retries: int = 2,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """Initialise the adapter.

        Args:
            api_key: OpenAI API key.
            organization: Optional organisation ID sent with every request.
            timeout_seconds: Per-request timeout in seconds.
            base_uri: API root; defaults to the public OpenAI endpoint.
            default_model: Chat model used when none is requested.
            default_embedding_model: Embedding model used when none is requested.
            default_image_model: Image model used when none is requested.
            max_retries: SDK-level retries for transient transport errors.
            client: Pre-built SDK client, mainly for tests.
        """
        super().__init__(
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            base_uri=base_uri or DEFAULT_BASE_URI,
            default_model=default_model,
            default_embedding_model=default_embedding_model,
            default_image_model=default_image_model,
        )
        self.organization = organization
        self.max_retries = max_retries
        self._client = client

    def get_client(self) -> AsyncOpenAI:
        """Return the SDK client, creating it on first use.

        Raises:
            ProviderError: If no API key is configured or found in the environment.
        """
        if self._client is None:
            try:
                self._client = AsyncOpenAI(
                    api_key=self.api_key or None,
                    organization=self.organization,
                    base_url=self.base_uri,
                    timeout=self.timeout_seconds,
                    max_retries=self.max_retries,
                )
            except OpenAIError as exc:
                raise ProviderError.authentication_failed(self.name, str(exc)) from exc
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()

    # -- error mapping --------------------------------------------------------

    def _translate_error(self, exc: OpenAIError, model: str | None) -> ProviderError:
        """Map an SDK exception to the shared error taxonomy."""
        message = f"OpenAI API error: {getattr(exc, 'message', None) or exc}"
        if isinstance(exc, APITimeoutError):
            return ProviderError.service_unavailable(
                self.name, f"OpenAI request timed out after {self.timeout_seconds}s", model=model
            )
        if isinstance(exc, APIConnectionError):
            return ProviderError.api_error(self.name, message, model=model)
        if isinstance(exc, RateLimitError):
            retry_after = exc.response.headers.get("retry-after", "")
            seconds = int(retry_after) if retry_after.isdigit() else 0
            return ProviderError.rate_limit_exceeded(self.name, seconds, message, model=model)
        if isinstance(exc, AuthenticationError | PermissionDeniedError):
            return ProviderError.authentication_failed(self.name, message, model=model)
        if isinstance(exc, NotFoundError) and model:
            return ProviderError.invalid_model(self.name, model, message)
        if isinstance(exc, BadRequestError):
            code = getattr(exc, "code", None)
            if code == "context_length_exceeded":
                match = _CONTEXT_TOKENS_RE.search(str(exc))
                max_tokens, token_count = (int(match.group(1)), int(match.group(2))) if match else (0, 0)
                return ProviderError.context_length_exceeded(
                    self.name, model or "", token_count, max_tokens, message
                )
            if code in _CONTENT_FILTER_CODES:
                return ProviderError.content_filtered(self.name, model or "", message)
        if isinstance(exc, APIStatusError):
            return ProviderError.from_status(self.name, exc.status_code, message, model=model)
        return ProviderError.api_error(self.name, message, model=model)

    # -- native capabilities --------------------------------------------------

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.text_model)

        messages: list[dict[str, str]] = []
        if opts.get("system"):
            messages.append({"role": "system", "content": str(opts["system"])})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": opts.get("temperature", 0.7),
            "max_tokens": opts.get("max_tokens", 500),
        }
        for key in _CHAT_PASSTHROUGH:
            if key in opts:
                payload[key] = opts[key]

        logger.debug("openai_chat_request", model=model, prompt_length=len(prompt))
        try:
            response = await self.get_client().chat.completions.create(**payload)
        except OpenAIError as exc:
            raise self._translate_error(exc, model) from exc

        content = (response.choices[0].message.content or "") if response.choices else ""
        record_exchange(
            "chat/completions",
            model=model,
            request=payload,
            response=_dump(response),
            usage=_usage_dict(getattr(response, "usage", None)),
        )
        return content

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        opts = options or {}
        model = self._resolve_model(opts, self.embedding_model)
        inputs = input if isinstance(input, list) else [input]

        payload: dict[str, Any] = {"model": model, "input": inputs}
        if "dimensions" in opts:
            payload["dimensions"] = opts["dimensions"]

        try:
            response = await self.get_client().embeddings.create(**payload)
        except OpenAIError as exc:
            raise self._translate_error(exc, model) from exc

        record_exchange(
            "embeddings",
            model=model,
            request=payload,
            usage=_usage_dict(getattr(response, "usage", None)),
        )
        return [list(item.embedding) for item in response.data]

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        opts = options or {}
        model = self._resolve_model(opts, self.image_model)
        response_format = opts.get("response_format", "url")

        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "n": 1,
            "size": opts.get("size", "1024x1024"),
            "quality": opts.get("quality", "standard"),
            "response_format": response_format,
        }
        try:
            response = await self.get_client().images.generate(**payload)
        except OpenAIError as exc:
            raise self._translate_error(exc, model) from exc

        if not response.data:
            raise ProviderError.api_error(self.name, "OpenAI returned no image", model=model)
        image = response.data[0]
        record_exchange("images/generations", model=model, request=payload)
        if response_format == "b64_json":
            return f"data:image/png;base64,{image.b64_json}"
        return str(image.url)
