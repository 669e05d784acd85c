"""Structured failure taxonomy for provider calls.

Every error carries the provider and, where known, the model that failed,
plus a ``kind`` callers can branch on to decide whether to retry, switch
providers, or surface the failure to an end user.
"""

from __future__ import annotations

__all__ = [
    "AIError",
    "ErrorKind",
    "NoProvidersError",
    "ProviderError",
]

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class ErrorKind(StrEnum):
    """Failure classification shared by all providers."""

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_MODEL = "invalid_model"
    MISSING_CAPABILITY = "missing_capability"
    SERVICE_UNAVAILABLE = "service_unavailable"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    CONTENT_FILTERED = "content_filtered"
    API_ERROR = "api_error"
    GENERAL_ERROR = "general_error"


class AIError(Exception):
    """Base error for the capability layer.

    Attributes are fixed at construction; use :meth:`with_context` to derive
    a copy that carries extra provider/model/detail information.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.GENERAL_ERROR,
        provider: str | None = None,
        model: str | None = None,
        status_code: int = 0,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._kind = ErrorKind(kind)
        self._provider = provider
        self._model = model
        self._status_code = status_code
        self._details: Mapping[str, Any] = MappingProxyType(dict(details or {}))

    @property
    def message(self) -> str:
        return self._message

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def provider(self) -> str | None:
        return self._provider

    @property
    def model(self) -> str | None:
        return self._model

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def details(self) -> Mapping[str, Any]:
        return self._details

    @property
    def retryable(self) -> bool:
        """Whether the same request may succeed if tried again later."""
        return self._kind in (ErrorKind.RATE_LIMIT_EXCEEDED, ErrorKind.SERVICE_UNAVAILABLE)

    def with_context(
        self,
        *,
        provider: str | None = None,
        model: str | None = None,
        **details: Any,
    ) -> AIError:
        """Return a copy of this error with additional context filled in."""
        clone = type(self).__new__(type(self))
        AIError.__init__(
            clone,
            self._message,
            kind=self._kind,
            provider=provider or self._provider,
            model=model or self._model,
            status_code=self._status_code,
            details={**self._details, **details},
        )
        clone.__cause__ = self.__cause__
        return clone

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": str(self._kind),
            "message": self._message,
            "provider": self._provider,
            "model": self._model,
            "status_code": self._status_code,
            "details": dict(self._details),
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self._kind!s}, provider={self._provider!r}, "
            f"model={self._model!r}, message={self._message!r})"
        )


class ProviderError(AIError):
    """Raised by provider adapters on transport, auth, quota or upstream failure."""

    @classmethod
    def rate_limit_exceeded(
        cls,
        provider: str,
        retry_after: int = 0,
        message: str = "API rate limit exceeded",
        *,
        model: str | None = None,
    ) -> ProviderError:
        details = {"retry_after": retry_after} if retry_after > 0 else {}
        return cls(
            message,
            kind=ErrorKind.RATE_LIMIT_EXCEEDED,
            provider=provider,
            model=model,
            status_code=429,
            details=details,
        )

    @classmethod
    def authentication_failed(
        cls,
        provider: str,
        message: str = "API authentication failed",
        *,
        model: str | None = None,
    ) -> ProviderError:
        return cls(
            message,
            kind=ErrorKind.AUTHENTICATION_FAILED,
            provider=provider,
            model=model,
            status_code=401,
        )

    @classmethod
    def invalid_model(
        cls,
        provider: str,
        model: str,
        message: str = "Invalid model requested",
    ) -> ProviderError:
        return cls(
            message,
            kind=ErrorKind.INVALID_MODEL,
            provider=provider,
            model=model,
            status_code=400,
        )

    @classmethod
    def missing_capability(
        cls,
        provider: str,
        capability: str,
        message: str | None = None,
    ) -> ProviderError:
        return cls(
            message or f"The provider {provider} does not support the {capability} capability",
            kind=ErrorKind.MISSING_CAPABILITY,
            provider=provider,
            status_code=400,
            details={"capability": capability},
        )

    @classmethod
    def service_unavailable(
        cls,
        provider: str,
        message: str = "Service is currently unavailable",
        *,
        model: str | None = None,
    ) -> ProviderError:
        return cls(
            message,
            kind=ErrorKind.SERVICE_UNAVAILABLE,
            provider=provider,
            model=model,
            status_code=503,
        )

    @classmethod
    def context_length_exceeded(
        cls,
        provider: str,
        model: str,
        token_count: int,
        max_tokens: int,
        message: str | None = None,
    ) -> ProviderError:
        return cls(
            message or f"Input exceeds maximum context length ({token_count} > {max_tokens})",
            kind=ErrorKind.CONTEXT_LENGTH_EXCEEDED,
            provider=provider,
            model=model,
            status_code=400,
            details={"token_count": token_count, "max_tokens": max_tokens},
        )

    @classmethod
    def content_filtered(
        cls,
        provider: str,
        model: str,
        message: str = "Content was filtered due to content policy",
    ) -> ProviderError:
        return cls(
            message,
            kind=ErrorKind.CONTENT_FILTERED,
            provider=provider,
            model=model,
            status_code=400,
        )

    @classmethod
    def api_error(
        cls,
        provider: str,
        message: str,
        *,
        model: str | None = None,
        status_code: int = 0,
        **details: Any,
    ) -> ProviderError:
        return cls(
            message,
            kind=ErrorKind.API_ERROR,
            provider=provider,
            model=model,
            status_code=status_code,
            details=details,
        )

    @classmethod
    def from_status(
        cls,
        provider: str,
        status_code: int,
        message: str,
        *,
        model: str | None = None,
        retry_after: str | None = None,
    ) -> ProviderError:
        """Classify an upstream HTTP failure by its status code.

        Args:
            provider: Provider name.
            status_code: HTTP status returned by the upstream API.
            message: Upstream error message (or reason phrase).
            model: Model the request targeted, if known.
            retry_after: Raw ``Retry-After`` header value, if present.
        """
        if status_code in (401, 403):
            return cls.authentication_failed(provider, message, model=model)
        if status_code == 404 and model:
            return cls.invalid_model(provider, model, message)
        if status_code == 429:
            seconds = int(retry_after) if retry_after and retry_after.isdigit() else 0
            return cls.rate_limit_exceeded(provider, seconds, message, model=model)
        if status_code >= 500:
            return cls(
                message,
                kind=ErrorKind.SERVICE_UNAVAILABLE,
                provider=provider,
                model=model,
                status_code=status_code,
            )
        return cls.api_error(provider, message, model=model, status_code=status_code)


class NoProvidersError(AIError):
    """Raised when the dispatcher has no adapter for the requested provider."""

    def __init__(self, provider: str | None, available: list[str] | None = None) -> None:
        names = ", ".join(available or []) or "none"
        super().__init__(
            f"No adapter registered for provider {provider!r} (available: {names})",
            kind=ErrorKind.GENERAL_ERROR,
            provider=provider,
            details={"available": list(available or [])},
        )
