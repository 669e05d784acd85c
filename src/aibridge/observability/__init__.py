"""Observability: structured logging and per-attempt call tracing."""

from aibridge.observability.logging_config import (
    LogFilter,
    LogFormat,
    LoggingConfig,
    configure_aibridge_logging,
    logging_config_from_settings,
)
from aibridge.observability.trace import (
    CallTrace,
    Exchange,
    current_trace,
    record_exchange,
    trace_call,
)

__all__ = [
    "CallTrace",
    "Exchange",
    "LogFilter",
    "LogFormat",
    "LoggingConfig",
    "configure_aibridge_logging",
    "current_trace",
    "logging_config_from_settings",
    "record_exchange",
    "trace_call",
]
