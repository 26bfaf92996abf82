"""Request context management for correlating logs with tool invocations.

Every tool call runs inside a request context that carries a correlation ID.
The ID is attached to log records by ``ContextFilter``, stamped into the
``meta.request_id`` field of every response envelope, and recorded on audit
events, so a single agent request can be traced end to end.

Usage:
    from todoist_mcp.core.context import (
        sync_request_context,
        get_correlation_id,
        generate_correlation_id,
    )

    with sync_request_context(tool_name="bulk_complete_tasks") as ctx:
        print(ctx.correlation_id)  # e.g., "req_a1b2c3d4e5f6"

    corr_id = generate_correlation_id(prefix="cli")  # "cli_a1b2c3d4e5f6"
"""

from __future__ import annotations

import secrets
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

__all__ = [
    "correlation_id_var",
    "tool_name_var",
    "start_time_var",
    "RequestContext",
    "generate_correlation_id",
    "sync_request_context",
    "get_correlation_id",
    "get_tool_name",
    "get_start_time",
]


# -----------------------------------------------------------------------------
# Context Variables
# -----------------------------------------------------------------------------

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
"""Correlation ID of the request being served (empty outside a request)."""

tool_name_var: ContextVar[str] = ContextVar("tool_name", default="")
"""Name of the tool being invoked."""

start_time_var: ContextVar[float] = ContextVar("start_time", default=0.0)
"""Wall-clock start of the current request."""


# -----------------------------------------------------------------------------
# Correlation ID Generation
# -----------------------------------------------------------------------------


def generate_correlation_id(prefix: str = "req") -> str:
    """Generate a unique correlation ID with optional prefix.

    Format: {prefix}_{12_hex_chars}
    Example: "req_a1b2c3d4e5f6"
    """
    return f"{prefix}_{secrets.token_hex(6)}"


# -----------------------------------------------------------------------------
# Request Context
# -----------------------------------------------------------------------------


@dataclass
class RequestContext:
    """Snapshot of the current request context.

    Attributes:
        correlation_id: Unique request identifier
        tool_name: Tool being invoked (empty for non-tool work such as startup)
        start_time: Request start timestamp
    """

    correlation_id: str = ""
    tool_name: str = ""
    start_time: float = field(default_factory=time.time)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds elapsed since the request started."""
        if self.start_time <= 0:
            return 0.0
        return (time.time() - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "tool_name": self.tool_name,
            "start_time": self.start_time,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@contextmanager
def sync_request_context(
    *,
    correlation_id: Optional[str] = None,
    tool_name: Optional[str] = None,
) -> Generator[RequestContext, None, None]:
    """Set the request context variables for the duration of a with block.

    contextvars flow across ``await`` boundaries, so this works for both sync
    and async code paths.

    Args:
        correlation_id: Request ID (auto-generated if None)
        tool_name: Name of the tool being served

    Yields:
        RequestContext snapshot
    """
    corr_id = correlation_id or generate_correlation_id()
    name = tool_name or ""
    start = time.time()

    token_corr = correlation_id_var.set(corr_id)
    token_tool = tool_name_var.set(name)
    token_start = start_time_var.set(start)

    try:
        yield RequestContext(correlation_id=corr_id, tool_name=name, start_time=start)
    finally:
        correlation_id_var.reset(token_corr)
        tool_name_var.reset(token_tool)
        start_time_var.reset(token_start)


# -----------------------------------------------------------------------------
# Context Accessors
# -----------------------------------------------------------------------------


def get_correlation_id() -> str:
    """Get the current correlation ID (empty string outside a request)."""
    return correlation_id_var.get()


def get_tool_name() -> str:
    """Get the name of the tool currently being served."""
    return tool_name_var.get()


def get_start_time() -> float:
    """Get the current request's start timestamp (0.0 outside a request)."""
    return start_time_var.get()
