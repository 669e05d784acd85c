"""Usage recording: one append-only record per provider call attempt.

Recorders receive success and failure notifications from the dispatcher
and turn them into immutable :class:`UsageRecord` entries. Two sinks ship
with the package: an in-memory store with query helpers and a structlog
sink that writes every record to a named logging channel.
"""

from __future__ import annotations

__all__ = [
    "BaseUsageRecorder",
    "CompositeUsageRecorder",
    "InMemoryUsageRecorder",
    "LoggingUsageRecorder",
    "UsageRecorder",
]

import json
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel

from aibridge.core.types import TokenUsageSummary, UsageRecord, UsageStatus

logger = structlog.get_logger(__name__)


def _as_text(value: Any) -> str:
    """Render a capability input or result as the stored prompt/completion text."""
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, list):
        return json.dumps(
            [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in value]
        )
    return json.dumps(value, default=str)


@runtime_checkable
class UsageRecorder(Protocol):
    """Sink notified once per provider call attempt."""

    def record_success(
        self,
        provider: str,
        model: str,
        input: Any,
        output: Any,
        *,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        total_tokens: int | None = None,
        execution_time: float | None = None,
        caller_id: str | None = None,
        request_data: dict[str, Any] | None = None,
        response_data: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageRecord | None:
        ...

    def record_failure(
        self,
        provider: str,
        model: str,
        input: Any,
        error_message: str,
        *,
        execution_time: float | None = None,
        caller_id: str | None = None,
        request_data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageRecord | None:
        ...


class BaseUsageRecorder(ABC):
    """Builds :class:`UsageRecord` entries and hands them to :meth:`write`."""

    def record_success(
        self,
        provider: str,
        model: str,
        input: Any,
        output: Any,
        *,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        total_tokens: int | None = None,
        execution_time: float | None = None,
        caller_id: str | None = None,
        request_data: dict[str, Any] | None = None,
        response_data: Any = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageRecord:
        record = UsageRecord(
            provider=provider,
            model=model,
            prompt=_as_text(input),
            completion=_as_text(output),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            caller_id=caller_id,
            request_data=request_data,
            response_data=response_data,
            execution_time=execution_time,
            status=UsageStatus.SUCCESS,
            metadata=metadata,
        )
        self.write(record)
        return record

    def record_failure(
        self,
        provider: str,
        model: str,
        input: Any,
        error_message: str,
        *,
        execution_time: float | None = None,
        caller_id: str | None = None,
        request_data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageRecord:
        record = UsageRecord(
            provider=provider,
            model=model,
            prompt=_as_text(input),
            caller_id=caller_id,
            request_data=request_data,
            execution_time=execution_time,
            status=UsageStatus.ERROR,
            error=error_message,
            metadata=metadata,
        )
        self.write(record)
        return record

    @abstractmethod
    def write(self, record: UsageRecord) -> None:
        """Persist one record."""


class InMemoryUsageRecorder(BaseUsageRecorder):
    """Append-only in-memory record store with query helpers.

    Example::

        recorder = InMemoryUsageRecorder()
        service = AIService(registry, recorder=recorder)
        await service.generate_text("hello")
        assert len(recorder) == 1
    """

    def __init__(self, *, retention_days: int | None = None) -> None:
        """Create an empty store.

        Args:
            retention_days: When set, records older than this many days are
                dropped as new records arrive (see :meth:`purge_expired`).
        """
        self._records: list[UsageRecord] = []
        self._lock = threading.Lock()
        self.retention_days = retention_days

    def write(self, record: UsageRecord) -> None:
        with self._lock:
            self._records.append(record)
            oldest = self._records[0]
        cutoff = self._retention_cutoff()
        if cutoff is not None and min(oldest.created_at, record.created_at) < cutoff:
            self.purge_expired()

    def _retention_cutoff(self, now: datetime | None = None) -> datetime | None:
        if self.retention_days is None:
            return None
        return (now or datetime.now(tz=UTC)) - timedelta(days=self.retention_days)

    def purge_expired(self, *, now: datetime | None = None) -> int:
        """Drop records outside the retention window; a no-op without one."""
        if self.retention_days is None:
            return 0
        return self.purge_older_than(self.retention_days, now=now)

    @property
    def records(self) -> list[UsageRecord]:
        """Snapshot of all records in insertion order."""
        with self._lock:
            return list(self._records)

    def query(
        self,
        *,
        provider: str | None = None,
        model: str | None = None,
        status: UsageStatus | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        caller_id: str | None = None,
    ) -> list[UsageRecord]:
        """Return records matching every given filter.

        Args:
            provider: Provider name.
            model: Model name.
            status: ``success`` or ``error``.
            start: Inclusive lower bound on ``created_at``.
            end: Inclusive upper bound on ``created_at``.
            caller_id: Id of the entity the call was made for.

        Returns:
            Matching records in insertion order.
        """
        result = []
        for record in self.records:
            if provider is not None and record.provider != provider:
                continue
            if model is not None and record.model != model:
                continue
            if status is not None and record.status != status:
                continue
            if start is not None and record.created_at < start:
                continue
            if end is not None and record.created_at > end:
                continue
            if caller_id is not None and record.caller_id != caller_id:
                continue
            result.append(record)
        return result

    def token_usage_summary(
        self, records: Sequence[UsageRecord] | None = None
    ) -> TokenUsageSummary:
        """Aggregate token usage over ``records`` (default: all records)."""
        selected = self.records if records is None else list(records)
        if not selected:
            return TokenUsageSummary()

        prompt_tokens = sum(r.prompt_tokens or 0 for r in selected)
        completion_tokens = sum(r.completion_tokens or 0 for r in selected)
        total_tokens = sum(r.total_tokens or 0 for r in selected)
        days = {r.created_at.astimezone(UTC).date() for r in selected}
        return TokenUsageSummary(
            total_prompt_tokens=prompt_tokens,
            total_completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            request_count=len(selected),
            days_active=len(days),
            average_tokens_per_request=total_tokens / len(selected),
        )

    def purge_older_than(self, days: int, *, now: datetime | None = None) -> int:
        """Drop records created more than ``days`` days ago.

        Returns:
            Number of records removed.
        """
        cutoff = (now or datetime.now(tz=UTC)) - timedelta(days=days)
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.created_at >= cutoff]
            removed = before - len(self._records)
        if removed:
            logger.info("usage_records_purged", removed=removed, older_than_days=days)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class LoggingUsageRecorder(BaseUsageRecorder):
    """Writes each record as a structlog event on a named channel.

    Prompts and completions are reduced to their lengths; payloads are
    omitted.
    """

    def __init__(self, channel: str = "aibridge.usage", log_level: str = "info") -> None:
        self.channel = channel
        self._log_level = log_level
        self._logger = structlog.get_logger(channel).bind(channel=channel)

    def write(self, record: UsageRecord) -> None:
        log_fn = getattr(self._logger, self._log_level, self._logger.info)
        if record.status == UsageStatus.ERROR:
            log_fn = self._logger.warning
        log_fn(
            "ai_usage_recorded",
            record_id=str(record.id),
            provider=record.provider,
            model=record.model,
            status=record.status.value,
            caller_id=record.caller_id,
            prompt_length=len(record.prompt),
            completion_length=len(record.completion or ""),
            prompt_tokens=record.prompt_tokens,
            completion_tokens=record.completion_tokens,
            total_tokens=record.total_tokens,
            execution_time=record.execution_time,
            error=record.error,
        )


class CompositeUsageRecorder(BaseUsageRecorder):
    """Forwards every record to several sinks."""

    def __init__(self, recorders: Iterable[BaseUsageRecorder]) -> None:
        self.recorders = list(recorders)

    def write(self, record: UsageRecord) -> None:
        for recorder in self.recorders:
            recorder.write(record)
