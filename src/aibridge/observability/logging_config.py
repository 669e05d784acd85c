"""Structured logging configuration for aibridge.

Log events from the dispatcher and the adapters carry ``provider`` and
``operation`` fields. :class:`LogFilter` narrows output on those fields and on
a minimum level; :func:`configure_aibridge_logging` installs the structlog
processor chain; :func:`logging_config_from_settings` derives a
:class:`LoggingConfig` from the ``log`` section of the settings.
"""

from __future__ import annotations

__all__ = [
    "LogFilter",
    "LogFormat",
    "LoggingConfig",
    "configure_aibridge_logging",
    "logging_config_from_settings",
]

import logging
import sys
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from aibridge.config.settings import AIBridgeSettings

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _level_number(name: str) -> int:
    return _LEVELS.get(name.lower(), logging.DEBUG)


class LogFormat(StrEnum):
    """Supported log output formats."""

    JSON = "json"
    CONSOLE = "console"


# ---------------------------------------------------------------------------
# LogFilter
# ---------------------------------------------------------------------------


class LogFilter:
    """structlog processor that keeps events for selected providers/operations.

    Each ``by_*`` call narrows the filter and returns ``self``. Repeated calls
    to the same method widen that criterion (any listed value passes); an
    event must satisfy every criterion that has been set.
    """

    def __init__(self) -> None:
        self._criteria: dict[str, set[str]] = {}
        self._min_level: int | None = None

    def _allow(self, field: str, value: str) -> LogFilter:
        self._criteria.setdefault(field, set()).add(value)
        return self

    def by_provider(self, provider: str) -> LogFilter:
        """Only pass events whose ``provider`` field is *provider*."""
        return self._allow("provider", provider)

    def by_operation(self, operation: str) -> LogFilter:
        """Only pass events whose ``operation`` field is *operation*.

        *operation* is a capability name such as ``"generate_text"``.
        """
        return self._allow("operation", str(operation))

    def by_level(self, min_level: str) -> LogFilter:
        """Only pass events at or above *min_level*.

        Raises:
            ValueError: If *min_level* is not a recognised level name.
        """
        key = min_level.lower()
        if key not in _LEVELS:
            msg = f"Unknown log level: {min_level!r}"
            raise ValueError(msg)
        self._min_level = _LEVELS[key]
        return self

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for field, allowed in self._criteria.items():
            if event_dict.get(field) not in allowed:
                raise structlog.DropEvent
        if self._min_level is not None and _level_number(method_name) < self._min_level:
            raise structlog.DropEvent
        return event_dict

    @property
    def active_providers(self) -> set[str] | None:
        return self._criteria.get("provider")

    @property
    def active_operations(self) -> set[str] | None:
        return self._criteria.get("operation")

    @property
    def active_min_level(self) -> int | None:
        return self._min_level


# ---------------------------------------------------------------------------
# LoggingConfig
# ---------------------------------------------------------------------------


class LoggingConfig(BaseModel):
    """Configuration container for aibridge structured logging.

    Attributes:
        level: Root log level (e.g. ``"INFO"``).
        format: Output format (:class:`LogFormat`).
        output: Output target, ``"stdout"`` or ``"stderr"``.
        context: Key-value pairs added to every event that lacks them.
        log_filter: Optional :class:`LogFilter` instance.
    """

    level: str = "INFO"
    format: LogFormat = LogFormat.JSON
    output: str = "stdout"
    context: dict[str, str] = Field(default_factory=dict)
    log_filter: LogFilter | None = None

    model_config = {"arbitrary_types_allowed": True}

    def add_context(self, key: str, value: str) -> LoggingConfig:
        """Add a key-value pair injected into every log event."""
        self.context[key] = value
        return self


# ---------------------------------------------------------------------------
# structlog processors
# ---------------------------------------------------------------------------


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["timestamp"] = datetime.now(tz=UTC).isoformat()
    return event_dict


def _add_log_level(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def _make_context_injector(
    context: dict[str, str],
) -> structlog.types.Processor:
    """Return a processor that merges *context* into every event."""
    defaults = dict(context)

    def _inject_context(
        logger: Any,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        for key, value in defaults.items():
            event_dict.setdefault(key, value)
        return event_dict

    return _inject_context


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------


def _build_processor_chain(config: LoggingConfig) -> list[structlog.types.Processor]:
    processors: list[structlog.types.Processor] = [_add_timestamp, _add_log_level]
    if config.context:
        processors.append(_make_context_injector(config.context))
    if config.log_filter is not None:
        processors.append(config.log_filter)
    if config.format == LogFormat.CONSOLE:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def configure_aibridge_logging(config: LoggingConfig | None = None) -> LoggingConfig:
    """Configure structured logging for aibridge.

    If *config* is ``None``, defaults (JSON to stdout, INFO level) are used.
    Returns the :class:`LoggingConfig` that was applied.
    """
    if config is None:
        config = LoggingConfig()

    root_level = _LEVELS.get(config.level.lower(), logging.INFO)
    stream = sys.stdout if config.output == "stdout" else sys.stderr

    handler = logging.StreamHandler(stream)
    handler.setLevel(root_level)
    logging.basicConfig(format="%(message)s", handlers=[handler], level=root_level, force=True)

    structlog.configure(
        processors=_build_processor_chain(config),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    return config


def logging_config_from_settings(settings: AIBridgeSettings) -> LoggingConfig:
    """Derive a :class:`LoggingConfig` from the ``log`` settings section.

    Unknown formats fall back to JSON.
    """
    fmt = settings.log.format.lower()
    return LoggingConfig(
        level=settings.log.level.upper(),
        format=LogFormat(fmt) if fmt in {f.value for f in LogFormat} else LogFormat.JSON,
    )
