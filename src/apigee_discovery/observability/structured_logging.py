"""
Structured logging with correlation IDs.

Each job execution runs under its own correlation ID so that every log line
of one poll cycle can be grouped, in both the JSON and human formats.

Usage:
    from apigee_discovery.observability import add_correlation_id

    with add_correlation_id("proxies-1a2b3c4d"):
        logger.info("Fetched page")  # includes correlation_id
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from apigee_discovery.utils.logging import ROOT_LOGGER, get_logger

logger = get_logger("apigee_discovery.observability.logging")

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# LogRecord attributes that are never copied into the JSON payload
_RESERVED = frozenset(
    (
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
    )
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


def new_correlation_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


@contextmanager
def add_correlation_id(correlation_id: str | None = None) -> Any:
    """
    Context manager that sets the correlation ID for the enclosed code.

    Args:
        correlation_id: Correlation ID (auto-generated if not provided)

    Yields:
        The correlation ID
    """
    cid = correlation_id or uuid.uuid4().hex[:8]
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON log formatter: timestamp, level, logger, message, correlation ID, extras."""

    def __init__(self, extra_fields: dict[str, Any] | None = None):
        super().__init__()
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                log_data[key] = value

        log_data.update(self.extra_fields)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Format: [timestamp] [level] [logger] [correlation_id] message"""

    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}]",
            f"[{record.levelname.ljust(8)}]",
            f"[{record.name}]",
        ]
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
) -> None:
    """
    Route agent logs through a structured formatter.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True) or human-readable (False)
        stream: Output stream (defaults to sys.stderr)
        extra_fields: Extra fields to include in all logs (JSON format only)
    """
    level_int = getattr(logging, level.upper(), logging.INFO)

    agent_logger = logging.getLogger(ROOT_LOGGER)
    agent_logger.handlers.clear()
    agent_logger.setLevel(level_int)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level_int)
    formatter: logging.Formatter
    if json_format:
        formatter = StructuredFormatter(extra_fields=extra_fields)
    else:
        formatter = HumanReadableFormatter()
    handler.setFormatter(formatter)
    agent_logger.addHandler(handler)

    logger.debug(f"Structured logging configured: level={level}, json={json_format}")
