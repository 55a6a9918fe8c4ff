"""
Structured logging for dropsync.

JSON-formatted logging with a per-cycle correlation id, so every line a
poll cycle emits (downloads, failures, dispatch) can be grouped.

Usage:
    from dropsync.observability import setup_structured_logging, add_correlation_id

    setup_structured_logging(level="INFO", json_format=True)

    with add_correlation_id("cycle-3f2a"):
        logger.info("Downloaded file", extra={"event": "file.downloaded", "file": name})
"""

import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from dropsync.utils.logging import ROOT_LOGGER, get_logger

logger = get_logger("dropsync.observability.logging")

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "message",
        "thread",
        "threadName",
        "taskName",
    }
)


def get_correlation_id() -> str | None:
    """Get the correlation id of the current context, if any."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation id for the current context."""
    _correlation_id.set(correlation_id)


def new_cycle_id() -> str:
    """Short random id for one poll cycle."""
    return f"cycle-{uuid.uuid4().hex[:8]}"


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Iterator[str]:
    """
    Context manager to add a correlation id to logs.

    Yields:
        The correlation id (auto-generated if not provided)
    """
    cid = correlation_id or str(uuid.uuid4())[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """
    JSON-formatted log formatter.

    Emits timestamp, level, logger, message, correlation id (if set),
    exception info and any ``extra=`` fields passed to the log call.
    """

    def __init__(self, include_correlation_id: bool = True, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.include_correlation_id = include_correlation_id
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_correlation_id:
            correlation_id = get_correlation_id()
            if correlation_id:
                log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter with optional correlation id.

    Format: [timestamp] [level] [logger] [correlation_id] message
    """

    def __init__(self, include_correlation_id: bool = True):
        super().__init__()
        self.include_correlation_id = include_correlation_id

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [f"[{timestamp}]", f"[{record.levelname.ljust(8)}]", f"[{record.name}]"]

        if self.include_correlation_id:
            correlation_id = get_correlation_id()
            if correlation_id:
                parts.append(f"[{correlation_id}]")

        parts.append(record.getMessage())
        message = " ".join(parts)

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_structured_logging(
    level: str = "INFO",
    json_format: bool = False,
    stream: Any = None,
    extra_fields: dict[str, Any] | None = None,
) -> logging.Handler:
    """
    Route dropsync logs through a structured formatter.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True) or human-readable (False)
        stream: Output stream (defaults to sys.stderr)
        extra_fields: Extra fields to include in all logs (JSON format only)

    Returns:
        The installed handler
    """
    level_int = getattr(logging, level.upper(), logging.INFO)
    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(level_int)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level_int)

    formatter: logging.Formatter
    if json_format:
        formatter = StructuredFormatter(extra_fields=extra_fields)
    else:
        formatter = HumanReadableFormatter()

    handler.setFormatter(formatter)
    package_logger.addHandler(handler)

    logger.debug(f"Structured logging configured: level={level}, json={json_format}")
    return handler


def log_file_downloaded(name: str, local_path: str, size: int) -> None:
    """Emit the per-download structured log line."""
    log = logging.getLogger("dropsync.sync")
    log.info(
        f"Downloaded {name}",
        extra={"event": "file.downloaded", "file": name, "local_path": local_path, "bytes": size},
    )


def log_invalid_delivery(payload: Any) -> None:
    """Emit the structured log line for a malformed dispatcher message."""
    log = logging.getLogger("dropsync.dispatch")
    log.error(
        f"Invalid message payload of type {type(payload).__name__} received!",
        extra={"event": "dispatch.invalid", "payload_type": type(payload).__name__},
    )
