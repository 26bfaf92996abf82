"""Logging configuration with automatic request-context injection.

The MCP stdio transport owns stdout, so every handler configured here writes
to stderr. Records emitted inside a tool call carry the call's correlation ID
and tool name, which lets an operator line up the server log with the
``meta.request_id`` values an agent sees.

Usage:
    from todoist_mcp.core.logging_config import configure_logging

    configure_logging(level="DEBUG", format="human")
    logger = logging.getLogger(__name__)
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO, Union

from todoist_mcp.core.context import (
    get_correlation_id,
    get_start_time,
    get_tool_name,
)

__all__ = [
    "ContextFilter",
    "StructuredFormatter",
    "HumanReadableFormatter",
    "configure_logging",
]

ROOT_LOGGER_NAME = "todoist_mcp"


class ContextFilter(logging.Filter):
    """Logging filter that injects request context into log records.

    Adds ``correlation_id``, ``tool_name`` and ``elapsed_ms`` to every record.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        record.tool_name = get_tool_name() or "-"

        start_time = get_start_time()
        if start_time > 0:
            record.elapsed_ms = round((time.time() - start_time) * 1000, 2)
        else:
            record.elapsed_ms = 0.0

        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter producing one object per line.

    Example output:
        {"timestamp":"2024-01-15T10:30:45.123+00:00","level":"INFO",
         "logger":"todoist_mcp.core.bulk","message":"Bulk close routed to batch",
         "correlation_id":"req_a1b2c3d4e5f6","tool_name":"bulk_complete_tasks",
         "elapsed_ms":42.5}
    """

    _STANDARD_ATTRS = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
            "message",
            "exc_info",
            "exc_text",
            "stack_info",
            "correlation_id",
            "tool_name",
            "elapsed_ms",
        }
    )

    def __init__(self, *, include_extra: bool = True, include_exception: bool = True):
        super().__init__()
        self.include_extra = include_extra
        self.include_exception = include_exception

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "-"),
            "tool_name": getattr(record, "tool_name", "-"),
            "elapsed_ms": getattr(record, "elapsed_ms", 0.0),
        }

        if self.include_exception and record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if key in self._STANDARD_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    extra[key] = str(value)
            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Human-readable formatter with a context prefix.

    Example:
        2024-01-15 10:30:45 [INFO] [req_a1b2c3] core.rest_client: GET /tasks -> 200
    """

    def __init__(self, *, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []

        if self.include_timestamp:
            parts.append(
                datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
            )

        parts.append(f"[{record.levelname}]")

        corr_id = getattr(record, "correlation_id", "-")
        if corr_id and corr_id != "-":
            parts.append(f"[{corr_id}]")

        logger_name = record.name
        prefix = f"{ROOT_LOGGER_NAME}."
        if logger_name.startswith(prefix):
            logger_name = logger_name[len(prefix):]
        parts.append(f"{logger_name}:")
        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    format: str = "human",  # "structured" or "human"
    stream: Optional[TextIO] = None,
    add_context: bool = True,
) -> logging.Logger:
    """Configure the ``todoist_mcp`` logger tree.

    Args:
        level: Log level (default: INFO)
        format: Output format ("structured" for JSON, "human" for readable)
        stream: Output stream (default: stderr)
        add_context: Add ContextFilter for automatic context injection

    Returns:
        The configured package root logger
    """
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    if format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())

    if add_context:
        handler.addFilter(ContextFilter())

    logger.addHandler(handler)
    return logger
