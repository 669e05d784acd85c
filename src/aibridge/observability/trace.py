"""Per-attempt call trace propagated through :mod:`contextvars`.

The dispatcher opens a :class:`CallTrace` around every provider attempt.
Adapters report each upstream exchange (request payload, response payload,
token usage, effective model) to whichever trace is current, so usage
records can be built without threading bookkeeping through the uniform
capability contract. Each asyncio task sees its own trace, which keeps
concurrent calls isolated.
"""

from __future__ import annotations

__all__ = [
    "CallTrace",
    "Exchange",
    "current_trace",
    "record_exchange",
    "trace_call",
]

import contextvars
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import BaseModel, Field

_current_trace: contextvars.ContextVar[CallTrace | None] = contextvars.ContextVar(
    "_current_trace", default=None
)


class Exchange(BaseModel):
    """One upstream request/response pair."""

    endpoint: str
    model: str | None = None
    request: dict[str, Any] | None = None
    response: Any = None
    usage: dict[str, int] = Field(default_factory=dict)


class CallTrace(BaseModel):
    """Collected exchanges and timing for one provider attempt."""

    provider: str
    operation: str
    started_at: float = Field(default_factory=time.monotonic)
    ended_at: float | None = None
    exchanges: list[Exchange] = Field(default_factory=list)

    @property
    def execution_time(self) -> float:
        """Elapsed seconds, measured up to now if the trace is still open."""
        end = self.ended_at if self.ended_at is not None else time.monotonic()
        return end - self.started_at

    @property
    def model(self) -> str | None:
        """Model of the last exchange that named one."""
        for exchange in reversed(self.exchanges):
            if exchange.model:
                return exchange.model
        return None

    def token_usage(self) -> dict[str, int]:
        """Sum token usage over all exchanges."""
        totals: dict[str, int] = {}
        for exchange in self.exchanges:
            for key, value in exchange.usage.items():
                totals[key] = totals.get(key, 0) + value
        return totals

    @property
    def request_data(self) -> dict[str, Any] | None:
        return self.exchanges[-1].request if self.exchanges else None

    @property
    def response_data(self) -> Any:
        return self.exchanges[-1].response if self.exchanges else None


def current_trace() -> CallTrace | None:
    """Return the trace of the attempt in progress, if any."""
    return _current_trace.get()


def record_exchange(
    endpoint: str,
    *,
    model: str | None = None,
    request: dict[str, Any] | None = None,
    response: Any = None,
    usage: dict[str, int] | None = None,
) -> None:
    """Attach an upstream exchange to the current trace; no-op outside a trace."""
    trace = _current_trace.get()
    if trace is None:
        return
    trace.exchanges.append(
        Exchange(
            endpoint=endpoint,
            model=model,
            request=request,
            response=response,
            usage=usage or {},
        )
    )


@contextmanager
def trace_call(provider: str, operation: str) -> Iterator[CallTrace]:
    """Open a trace for one provider attempt and make it current."""
    trace = CallTrace(provider=provider, operation=operation)
    token = _current_trace.set(trace)
    try:
        yield trace
    finally:
        trace.ended_at = time.monotonic()
        _current_trace.reset(token)
