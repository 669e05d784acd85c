"""Tests for usage recorders."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
import structlog
from structlog.testing import capture_logs

from aibridge.core.types import SentimentCategory, SentimentResult, UsageRecord, UsageStatus
from aibridge.usage import (
    BaseUsageRecorder,
    CompositeUsageRecorder,
    InMemoryUsageRecorder,
    LoggingUsageRecorder,
    UsageRecorder,
)


def _make_record(
    provider: str = "openai",
    *,
    created_at: datetime | None = None,
    prompt_tokens: int = 10,
    completion_tokens: int = 5,
    status: UsageStatus = UsageStatus.SUCCESS,
    caller_id: str | None = None,
) -> UsageRecord:
    return UsageRecord(
        provider=provider,
        model="gpt-4",
        prompt="p",
        completion="c",
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        status=status,
        caller_id=caller_id,
        created_at=created_at or datetime.now(tz=UTC),
    )


@pytest.fixture(autouse=True)
def _reset_structlog() -> None:
    yield  # type: ignore[misc]
    structlog.reset_defaults()


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------


class TestRecordBuilding:
    def test_recorders_satisfy_protocol(self) -> None:
        assert isinstance(InMemoryUsageRecorder(), UsageRecorder)
        assert isinstance(LoggingUsageRecorder(), UsageRecorder)

    def test_success_record(self) -> None:
        recorder = InMemoryUsageRecorder()
        record = recorder.record_success(
            "openai",
            "gpt-4",
            "hello",
            "world",
            prompt_tokens=3,
            completion_tokens=2,
            execution_time=0.25,
            caller_id="user-1",
            metadata={"operation": "generate_text"},
        )
        assert record.status == UsageStatus.SUCCESS
        assert record.total_tokens == 5
        assert record.prompt == "hello"
        assert record.completion == "world"
        assert recorder.records == [record]

    def test_failure_record(self) -> None:
        recorder = InMemoryUsageRecorder()
        record = recorder.record_failure("openai", "gpt-4", "hello", "boom", execution_time=0.1)
        assert record.status == UsageStatus.ERROR
        assert record.error == "boom"
        assert record.completion is None

    def test_structured_values_serialised(self) -> None:
        recorder = InMemoryUsageRecorder()
        record = recorder.record_success(
            "mock",
            "mock",
            ["a", "b"],
            SentimentResult(score=0.5, category=SentimentCategory.POSITIVE),
        )
        assert record.prompt == '["a", "b"]'
        assert '"category":"positive"' in (record.completion or "")


# ---------------------------------------------------------------------------
# InMemoryUsageRecorder queries
# ---------------------------------------------------------------------------


class TestInMemoryQueries:
    def test_filter_by_provider_status_and_caller(self) -> None:
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record("openai", caller_id="u1"))
        recorder.write(_make_record("huggingface", caller_id="u1"))
        recorder.write(_make_record("openai", status=UsageStatus.ERROR, caller_id="u2"))

        assert len(recorder.query(provider="openai")) == 2
        assert len(recorder.query(status=UsageStatus.ERROR)) == 1
        assert len(recorder.query(status="success")) == 2
        assert len(recorder.query(caller_id="u1", provider="huggingface")) == 1

    def test_filter_by_date_range(self) -> None:
        now = datetime.now(tz=UTC)
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record(created_at=now - timedelta(days=3)))
        recorder.write(_make_record(created_at=now - timedelta(days=1)))
        recorder.write(_make_record(created_at=now))

        recent = recorder.query(start=now - timedelta(days=2))
        assert len(recent) == 2
        older = recorder.query(end=now - timedelta(days=2))
        assert len(older) == 1

    def test_token_usage_summary(self) -> None:
        now = datetime(2024, 5, 10, 12, tzinfo=UTC)
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record(created_at=now, prompt_tokens=10, completion_tokens=5))
        recorder.write(_make_record(created_at=now, prompt_tokens=20, completion_tokens=5))
        recorder.write(
            _make_record(created_at=now - timedelta(days=1), prompt_tokens=0, completion_tokens=0)
        )

        summary = recorder.token_usage_summary()
        assert summary.total_prompt_tokens == 30
        assert summary.total_completion_tokens == 10
        assert summary.total_tokens == 40
        assert summary.request_count == 3
        assert summary.days_active == 2
        assert summary.average_tokens_per_request == pytest.approx(40 / 3)

    def test_summary_of_selection(self) -> None:
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record("openai"))
        recorder.write(_make_record("huggingface", prompt_tokens=100))
        summary = recorder.token_usage_summary(recorder.query(provider="openai"))
        assert summary.total_tokens == 15

    def test_empty_summary(self) -> None:
        summary = InMemoryUsageRecorder().token_usage_summary()
        assert summary.request_count == 0
        assert summary.average_tokens_per_request == 0.0

    def test_purge_older_than(self) -> None:
        now = datetime(2024, 5, 10, tzinfo=UTC)
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record(created_at=now - timedelta(days=40)))
        recorder.write(_make_record(created_at=now - timedelta(days=5)))
        assert recorder.purge_older_than(30, now=now) == 1
        assert len(recorder) == 1
        assert recorder.purge_older_than(30, now=now) == 0

    def test_retention_applied_on_write(self) -> None:
        now = datetime.now(tz=UTC)
        recorder = InMemoryUsageRecorder(retention_days=30)
        recorder.write(_make_record(created_at=now - timedelta(days=5)))
        recorder.write(_make_record(created_at=now - timedelta(days=40)))
        assert len(recorder) == 1
        assert recorder.records[0].created_at == now - timedelta(days=5)

    def test_purge_expired(self) -> None:
        now = datetime.now(tz=UTC)
        recorder = InMemoryUsageRecorder(retention_days=7)
        recorder.write(_make_record(created_at=now - timedelta(days=1)))
        recorder.write(_make_record(created_at=now))
        assert recorder.purge_expired(now=now + timedelta(days=6, hours=12)) == 1
        assert len(recorder) == 1

    def test_no_retention_keeps_everything(self) -> None:
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record(created_at=datetime(2000, 1, 1, tzinfo=UTC)))
        assert recorder.purge_expired() == 0
        assert len(recorder) == 1

    def test_clear(self) -> None:
        recorder = InMemoryUsageRecorder()
        recorder.write(_make_record())
        recorder.clear()
        assert len(recorder) == 0


# ---------------------------------------------------------------------------
# Logging and composite sinks
# ---------------------------------------------------------------------------


class TestLoggingUsageRecorder:
    def test_success_logged_on_channel(self) -> None:
        with capture_logs() as logs:
            recorder = LoggingUsageRecorder("ai.usage")
            recorder.record_success("openai", "gpt-4", "hello", "world", prompt_tokens=1, completion_tokens=1)

        (event,) = logs
        assert event["event"] == "ai_usage_recorded"
        assert event["log_level"] == "info"
        assert event["channel"] == "ai.usage"
        assert event["provider"] == "openai"
        assert event["prompt_length"] == 5
        assert event["total_tokens"] == 2

    def test_failure_logged_as_warning(self) -> None:
        with capture_logs() as logs:
            recorder = LoggingUsageRecorder()
            recorder.record_failure("openai", "gpt-4", "hello", "rate limited")

        (event,) = logs
        assert event["log_level"] == "warning"
        assert event["status"] == "error"
        assert event["error"] == "rate limited"

    def test_configured_level(self) -> None:
        with capture_logs() as logs:
            LoggingUsageRecorder(log_level="debug").write(_make_record())
        assert logs[0]["log_level"] == "debug"


class _ListRecorder(BaseUsageRecorder):
    def __init__(self) -> None:
        self.written: list[UsageRecord] = []

    def write(self, record: UsageRecord) -> None:
        self.written.append(record)


class TestCompositeUsageRecorder:
    def test_fans_out(self) -> None:
        first, second = _ListRecorder(), _ListRecorder()
        composite = CompositeUsageRecorder([first, second])
        record = composite.record_success("openai", "gpt-4", "a", "b")
        assert first.written == [record]
        assert second.written == [record]
