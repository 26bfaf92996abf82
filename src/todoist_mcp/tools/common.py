"""Shared plumbing for tool handlers.

Every handler builds a ``ToolResponse`` inside ``run_tool``, which applies the
per-invocation deadline, converts taxonomy errors into error envelopes, and
stamps request ID, rate-limit state and timing into ``meta``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional

from mcp.types import ToolAnnotations

from todoist_mcp.core.context import generate_correlation_id, get_correlation_id
from todoist_mcp.core.errors import (
    AuthenticationFailedError,
    InvalidArgumentError,
    TodoistError,
)
from todoist_mcp.core.observability import audit_log
from todoist_mcp.core.resilience import run_with_deadline
from todoist_mcp.core.responses import ToolResponse, internal_error
from todoist_mcp.core.services import TodoistServices

logger = logging.getLogger(__name__)

TODOIST_COLORS = frozenset(
    {
        "berry_red",
        "red",
        "orange",
        "yellow",
        "olive_green",
        "lime_green",
        "green",
        "mint_green",
        "teal",
        "sky_blue",
        "light_blue",
        "blue",
        "grape",
        "violet",
        "lavender",
        "magenta",
        "salmon",
        "charcoal",
        "grey",
        "taupe",
    }
)


def _request_id() -> str:
    return get_correlation_id() or generate_correlation_id(prefix="tool")


def _attach_meta(
    response: dict,
    *,
    request_id: str,
    duration_ms: Optional[float] = None,
    rate_limit: Optional[Dict[str, Any]] = None,
) -> dict:
    meta = response.setdefault("meta", {"version": "response-v2"})
    meta["request_id"] = request_id
    if rate_limit:
        meta["rate_limit"] = rate_limit
    if duration_ms is not None:
        telemetry = dict(meta.get("telemetry") or {})
        telemetry["duration_ms"] = round(duration_ms, 2)
        meta["telemetry"] = telemetry
    return response


async def run_tool(
    services: TodoistServices,
    tool_name: str,
    handler: Callable[[], Awaitable[ToolResponse]],
) -> dict:
    """Run one tool invocation and return its envelope as a dict.

    A ``TodoistError`` becomes an error envelope carrying its code, type and
    remediation. Anything else is logged with its traceback and reported as
    an internal error, so a single bad call never takes the server down.
    """
    request_id = _request_id()
    start = time.perf_counter()

    try:
        response = await run_with_deadline(
            handler(), services.tool_timeout, operation=tool_name
        )
    except TodoistError as exc:
        if isinstance(exc, AuthenticationFailedError):
            audit_log("auth_failure", tool=tool_name, reason=exc.message)
        logger.info("%s failed: %s", tool_name, exc.message)
        response = exc.to_response(request_id=request_id)
    except Exception:  # pragma: no cover - defensive safeguard
        logger.exception("Unexpected error in %s", tool_name)
        response = internal_error(f"{tool_name} failed unexpectedly", request_id=request_id)

    return _attach_meta(
        asdict(response),
        request_id=request_id,
        duration_ms=(time.perf_counter() - start) * 1000,
        rate_limit=services.rate_limiter.snapshot(),
    )


def tool_annotations(
    title: str,
    *,
    read_only: bool = False,
    destructive: bool = False,
    idempotent: bool = False,
) -> ToolAnnotations:
    """Behaviour hints shown to the agent. Every tool talks to Todoist."""
    return ToolAnnotations(
        title=title,
        readOnlyHint=read_only,
        destructiveHint=destructive,
        idempotentHint=read_only or idempotent,
        openWorldHint=True,
    )


def compact(**fields: Any) -> Dict[str, Any]:
    """Build a request body, dropping fields that were not supplied."""
    return {key: value for key, value in fields.items() if value is not None}


def validate_color(color: Optional[str]) -> Optional[str]:
    if color is None:
        return None
    if color not in TODOIST_COLORS:
        raise InvalidArgumentError(
            f"color '{color}' is not a Todoist color",
            field="color",
            remediation=f"Use one of: {', '.join(sorted(TODOIST_COLORS))}",
        )
    return color


def validate_order(order: Optional[int], field_name: str = "order") -> Optional[int]:
    if order is None:
        return None
    if isinstance(order, bool) or not isinstance(order, int) or order < 0:
        raise InvalidArgumentError(
            f"{field_name} must be a non-negative integer", field=field_name
        )
    return order


def validate_name(name: Optional[str], field_name: str = "name") -> Optional[str]:
    """Optional short name: when given it must not be blank."""
    if name is None:
        return None
    if not name.strip():
        raise InvalidArgumentError(f"{field_name} must not be blank", field=field_name)
    if len(name) > 1024:
        raise InvalidArgumentError(f"{field_name} is too long", field=field_name)
    return name


def pagination_meta(next_cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    if not next_cursor:
        return None
    return {"next_cursor": next_cursor, "has_more": True}


def require_update(body: Dict[str, Any], allowed: List[str]) -> Dict[str, Any]:
    if not body:
        raise InvalidArgumentError(
            "at least one field to update must be provided",
            field="fields",
            remediation=f"Provide one or more of: {', '.join(allowed)}",
        )
    return body
