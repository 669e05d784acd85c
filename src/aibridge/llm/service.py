"""Dispatcher: routes capability calls to provider adapters.

``AIService`` resolves the active provider, wraps text generation in the
response cache, walks the fallback chain on provider failures and records
one usage entry per attempt. Selection helpers (:meth:`AIService.provider`,
:meth:`AIService.model`, :meth:`AIService.with_caller`) return new service
instances, so concurrent callers never observe each other's selection.
"""

from __future__ import annotations

__all__ = ["AIService"]

import copy
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from aibridge.core.errors import NoProvidersError, ProviderError
from aibridge.core.types import (
    CallConfig,
    Capability,
    CapabilityRequest,
    ClassificationResult,
    EntityResult,
    SentimentResult,
)
from aibridge.llm.cache import CacheStrategy, InMemoryCacheStore
from aibridge.observability.trace import CallTrace, trace_call
from aibridge.providers.registry import ProviderRegistry
from aibridge.usage import (
    BaseUsageRecorder,
    CompositeUsageRecorder,
    InMemoryUsageRecorder,
    LoggingUsageRecorder,
    UsageRecorder,
)

if TYPE_CHECKING:
    from aibridge.config.settings import AIBridgeSettings
    from aibridge.llm.cache import CacheStore
    from aibridge.providers.base import ProviderAdapter

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Called with (adapter, options); returns the capability result.
AdapterCall = Callable[..., Awaitable[T]]


class AIService:
    """Uniform entry point for every AI capability.

    Example::

        registry = ProviderRegistry([OpenAIAdapter(api_key=key)])
        ai = AIService(registry, cache=CacheStrategy())
        text = await ai.generate_text("Write a haiku")
        vectors = await ai.provider("huggingface").generate_embeddings(["a", "b"])
    """

    def __init__(
        self,
        registry: ProviderRegistry | Iterable[ProviderAdapter],
        *,
        default_provider: str | None = None,
        cache: CacheStrategy | None = None,
        recorder: UsageRecorder | None = None,
        fallback_enabled: bool = False,
        fallback_providers: Sequence[str] = (),
        record_usage: bool = True,
        caller_id: str | None = None,
        config: CallConfig | None = None,
    ) -> None:
        """Initialise the service.

        Args:
            registry: Provider registry, or adapters to register by name.
            default_provider: Provider used when none is selected; defaults to
                the first registered adapter.
            cache: Response cache; caching is off when omitted.
            recorder: Usage sink notified once per attempt.
            fallback_enabled: Whether to try other providers on failure.
            fallback_providers: Fallback order after the active provider.
            record_usage: Whether to notify ``recorder``.
            caller_id: Id of the entity calls are made for, stored on usage records.
            config: Initial provider/model/caller selection.
        """
        self._registry = (
            registry if isinstance(registry, ProviderRegistry) else ProviderRegistry(registry)
        )
        self._default_provider = default_provider or next(iter(self._registry), None)
        self._cache = cache
        self._recorder = recorder
        self._fallback_enabled = fallback_enabled
        self._fallback_providers = list(fallback_providers)
        self._record_usage = record_usage
        self._config = config or CallConfig(caller_id=caller_id)

    @classmethod
    def from_settings(
        cls,
        settings: AIBridgeSettings,
        *,
        recorder: UsageRecorder | None = None,
        cache_store: CacheStore | None = None,
    ) -> AIService:
        """Build a service, its adapters, cache and usage sinks from settings.

        Args:
            settings: Loaded :class:`AIBridgeSettings`.
            recorder: Usage sink overriding the ones derived from settings.
            cache_store: Cache backend; an in-memory LRU store by default.
        """
        registry = ProviderRegistry.from_settings(settings)
        cache = CacheStrategy(
            cache_store or InMemoryCacheStore(max_entries=settings.cache.max_entries),
            enabled=settings.cache.enabled,
            ttl_minutes=settings.cache.ttl_minutes,
        )

        if recorder is None:
            sinks: list[BaseUsageRecorder] = []
            if settings.log.enabled:
                sinks.append(
                    LoggingUsageRecorder(settings.log.channel, settings.log.level.lower())
                )
            if settings.storage.enabled:
                sinks.append(
                    InMemoryUsageRecorder(retention_days=settings.storage.purge_after_days)
                )
            if len(sinks) == 1:
                recorder = sinks[0]
            elif sinks:
                recorder = CompositeUsageRecorder(sinks)

        return cls(
            registry,
            default_provider=settings.default_provider,
            cache=cache,
            recorder=recorder,
            fallback_enabled=settings.fallback.enabled,
            fallback_providers=settings.fallback.providers,
            record_usage=recorder is not None,
        )

    # -- selection ------------------------------------------------------------

    def _derive(self, **changes: Any) -> AIService:
        clone = copy.copy(self)
        clone._config = self._config.model_copy(update=changes)
        return clone

    def provider(self, name: str) -> AIService:
        """Return a service bound to provider ``name``; ``self`` is unchanged."""
        return self._derive(provider=name)

    def model(self, name: str) -> AIService:
        """Return a service with model override ``name``; ``self`` is unchanged."""
        return self._derive(model=name)

    def with_caller(self, caller_id: str | None) -> AIService:
        """Return a service whose usage records carry ``caller_id``."""
        return self._derive(caller_id=caller_id)

    @property
    def config(self) -> CallConfig:
        return self._config

    @property
    def active_provider(self) -> str | None:
        return self._config.provider or self._default_provider

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def cache(self) -> CacheStrategy | None:
        return self._cache

    @property
    def recorder(self) -> UsageRecorder | None:
        return self._recorder

    def adapter(self, name: str | None = None) -> ProviderAdapter:
        """Return the adapter for ``name`` (default: the active provider)."""
        return self._registry.get(name or self.active_provider)

    def get_client(self, name: str | None = None) -> Any:
        """Return the transport handle of the adapter for ``name``."""
        return self.adapter(name).get_client()

    async def aclose(self) -> None:
        await self._registry.aclose()

    # -- capabilities ---------------------------------------------------------

    async def generate_text(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        return await self._run(
            Capability.GENERATE_TEXT,
            prompt,
            options,
            lambda adapter, opts: adapter.generate_text(prompt, opts),
        )

    async def generate_embeddings(
        self, input: str | list[str], options: dict[str, Any] | None = None
    ) -> list[list[float]]:
        inputs = input if isinstance(input, list) else [input]
        return await self._run(
            Capability.GENERATE_EMBEDDINGS,
            inputs,
            options,
            lambda adapter, opts: adapter.generate_embeddings(inputs, opts),
        )

    async def analyze_sentiment(
        self, text: str, options: dict[str, Any] | None = None
    ) -> SentimentResult:
        return await self._run(
            Capability.ANALYZE_SENTIMENT,
            text,
            options,
            lambda adapter, opts: adapter.analyze_sentiment(text, opts),
        )

    async def classify_text(
        self, text: str, categories: Sequence[str], options: dict[str, Any] | None = None
    ) -> ClassificationResult:
        labels = [str(c) for c in categories]
        if not labels:
            raise ValueError("categories must not be empty")
        return await self._run(
            Capability.CLASSIFY_TEXT,
            text,
            options,
            lambda adapter, opts: adapter.classify_text(text, labels, opts),
            auxiliary_input=labels,
        )

    async def generate_image(self, prompt: str, options: dict[str, Any] | None = None) -> str:
        return await self._run(
            Capability.GENERATE_IMAGE,
            prompt,
            options,
            lambda adapter, opts: adapter.generate_image(prompt, opts),
        )

    async def extract_entities(
        self, text: str, options: dict[str, Any] | None = None
    ) -> list[EntityResult]:
        return await self._run(
            Capability.EXTRACT_ENTITIES,
            text,
            options,
            lambda adapter, opts: adapter.extract_entities(text, opts),
        )

    # -- dispatch -------------------------------------------------------------

    def _call_options(
        self, options: dict[str, Any] | None, provider: str | None
    ) -> dict[str, Any]:
        """Options for one attempt against ``provider``.

        The selected model names a model of the active provider only, so it
        is not forwarded to fallback providers.
        """
        opts = dict(options or {})
        if self._config.model and "model" not in opts and provider == self.active_provider:
            opts["model"] = self._config.model
        return opts

    def _candidates(self) -> list[str]:
        """Provider names to try, in order.

        The active provider always comes first and must be registered; the
        fallback list follows without duplicates, skipping unknown names.
        """
        active = self.active_provider
        if not active or active not in self._registry:
            raise NoProvidersError(active, self._registry.names())
        if not self._fallback_enabled:
            return [active]

        ordered = [active]
        for name in self._fallback_providers:
            if name in ordered:
                continue
            if name not in self._registry:
                logger.debug("fallback_provider_skipped", provider=name, reason="not_registered")
                continue
            ordered.append(name)
        return ordered

    async def _run(
        self,
        operation: Capability,
        input: Any,
        options: dict[str, Any] | None,
        call: AdapterCall[T],
        *,
        auxiliary_input: Any = None,
    ) -> T:
        request = CapabilityRequest(
            operation=operation,
            primary_input=input,
            auxiliary_input=auxiliary_input,
            options=dict(options or {}),
        )
        cache = self._cache
        if cache is None or not cache.is_cacheable(operation):
            return await self._dispatch(request, call)

        key = cache.compute_key(
            operation,
            request.primary_input,
            self._call_options(request.options, self.active_provider),
        )
        cached = await cache.lookup(key)
        if cached is not None:
            return cached
        result = await self._dispatch(request, call)
        await cache.store(key, result)
        return result

    async def _dispatch(self, request: CapabilityRequest, call: AdapterCall[T]) -> T:
        candidates = self._candidates()
        operation = request.operation
        last_error: ProviderError | None = None

        for index, name in enumerate(candidates):
            adapter = self._registry.get(name)
            try:
                return await self._attempt(name, adapter, request, call)
            except ProviderError as exc:
                last_error = exc
                remaining = len(candidates) - index - 1
                logger.warning(
                    "provider_failed",
                    provider=name,
                    operation=operation.value,
                    error_kind=exc.kind.value,
                    error=exc.message,
                    remaining=remaining,
                )
                if remaining:
                    logger.info(
                        "provider_fallback",
                        from_provider=name,
                        to_provider=candidates[index + 1],
                        operation=operation.value,
                    )

        assert last_error is not None
        raise last_error

    async def _attempt(
        self,
        name: str,
        adapter: ProviderAdapter,
        request: CapabilityRequest,
        call: AdapterCall[T],
    ) -> T:
        opts = self._call_options(request.options, name)
        with trace_call(name, request.operation.value) as trace:
            try:
                result = await call(adapter, opts)
            except Exception as exc:
                self._record_failure(trace, adapter, request.primary_input, exc, opts)
                raise
        logger.debug(
            "request_routed",
            provider=name,
            operation=request.operation.value,
            latency_ms=round(trace.execution_time * 1000, 1),
        )
        self._record_success(trace, adapter, request.primary_input, result, opts)
        return result

    # -- usage ----------------------------------------------------------------

    @staticmethod
    def _record_model(trace: CallTrace, adapter: ProviderAdapter, opts: dict[str, Any]) -> str:
        return str(trace.model or opts.get("model") or getattr(adapter, "text_model", "") or "")

    def _record_success(
        self,
        trace: CallTrace,
        adapter: ProviderAdapter,
        input: Any,
        result: Any,
        opts: dict[str, Any],
    ) -> None:
        if not self._record_usage or self._recorder is None:
            return
        usage = trace.token_usage()
        try:
            self._recorder.record_success(
                trace.provider,
                self._record_model(trace, adapter, opts),
                input,
                result,
                prompt_tokens=usage.get("prompt_tokens"),
                completion_tokens=usage.get("completion_tokens"),
                total_tokens=usage.get("total_tokens"),
                execution_time=trace.execution_time,
                caller_id=self._config.caller_id,
                request_data=trace.request_data,
                response_data=trace.response_data,
                metadata={"operation": trace.operation},
            )
        except Exception as exc:
            logger.warning("usage_record_failed", provider=trace.provider, error=str(exc))

    def _record_failure(
        self,
        trace: CallTrace,
        adapter: ProviderAdapter,
        input: Any,
        error: Exception,
        opts: dict[str, Any],
    ) -> None:
        if not self._record_usage or self._recorder is None:
            return
        metadata: dict[str, Any] = {"operation": trace.operation}
        if isinstance(error, ProviderError):
            metadata["error_kind"] = error.kind.value
        try:
            self._recorder.record_failure(
                trace.provider,
                self._record_model(trace, adapter, opts),
                input,
                str(error),
                execution_time=trace.execution_time,
                caller_id=self._config.caller_id,
                request_data=trace.request_data,
                metadata=metadata,
            )
        except Exception as exc:
            logger.warning("usage_record_failed", provider=trace.provider, error=str(exc))

    def __repr__(self) -> str:
        return (
            f"AIService(provider={self.active_provider!r}, model={self._config.model!r}, "
            f"providers={self._registry.names()!r})"
        )
