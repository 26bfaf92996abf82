"""
Audit logging and tool instrumentation for todoist-mcp.

Audit events go to a dedicated ``todoist_mcp.core.observability.audit``
logger so operators can route them separately from the diagnostic log.
Everything written there passes through ``redact_sensitive_data`` first,
since tool arguments and backend error bodies can echo the API token.

FastMCP integration:

    from todoist_mcp.core.observability import mcp_tool, audit_log

    @mcp.tool()
    @mcp_tool(tool_name="get_task")
    async def get_task(task_id: str) -> dict:
        ...
"""

import asyncio
import functools
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Final, List, Optional, Tuple, TypeVar

from todoist_mcp.core.context import (
    generate_correlation_id,
    get_correlation_id,
    sync_request_context,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Sensitive Data Redaction
# =============================================================================

SENSITIVE_PATTERNS: Final[List[Tuple[str, str]]] = [
    (r"(?i)bearer\s+([a-zA-Z0-9_\-\.]+)", "BEARER_TOKEN"),
    (
        r"(?i)(api[_-]?token|api[_-]?key|access[_-]?token)\s*[:=]\s*['\"]?([a-zA-Z0-9_\-\.]{20,})['\"]?",
        "API_TOKEN",
    ),
    # Todoist personal tokens are 40 lowercase hex characters
    (r"\b[0-9a-f]{40}\b", "TODOIST_TOKEN"),
]
"""Patterns for detecting secrets that must never reach a log line.

Each tuple holds a regex and the label used in the redaction marker.
"""

_SENSITIVE_KEYS: Final = frozenset(
    {
        "token",
        "api_token",
        "api_key",
        "apikey",
        "access_token",
        "authorization",
        "auth",
        "secret",
        "password",
        "credential",
        "credentials",
    }
)


def redact_sensitive_data(
    data: Any,
    *,
    patterns: Optional[List[Tuple[str, str]]] = None,
    redaction_format: str = "[REDACTED:{label}]",
    max_depth: int = 10,
) -> Any:
    """Recursively redact secrets from strings, dicts, and lists.

    Values stored under well-known secret key names are replaced wholesale.
    Strings are scanned for ``SENSITIVE_PATTERNS``.

    Args:
        data: The data to redact (string, dict, list, or nested structure)
        patterns: Custom patterns to use (default: SENSITIVE_PATTERNS)
        redaction_format: Format string for redaction markers (uses {label})
        max_depth: Maximum recursion depth

    Returns:
        A copy of the data with sensitive values redacted

    Example:
        >>> redact_sensitive_data({"Authorization": "Bearer abc", "id": "42"})
        {'Authorization': '[REDACTED:AUTHORIZATION]', 'id': '42'}
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    check_patterns = patterns if patterns is not None else SENSITIVE_PATTERNS

    if isinstance(data, str):
        result = data
        for pattern, label in check_patterns:
            result = re.sub(pattern, redaction_format.format(label=label), result)
        return result

    if isinstance(data, dict):
        redacted: Dict[Any, Any] = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if key_lower in _SENSITIVE_KEYS:
                redacted[key] = f"[REDACTED:{key_lower.upper()}]"
            else:
                redacted[key] = redact_sensitive_data(
                    value,
                    patterns=check_patterns,
                    redaction_format=redaction_format,
                    max_depth=max_depth - 1,
                )
        return redacted

    if isinstance(data, (list, tuple)):
        items = [
            redact_sensitive_data(
                item,
                patterns=check_patterns,
                redaction_format=redaction_format,
                max_depth=max_depth - 1,
            )
            for item in data
        ]
        return tuple(items) if isinstance(data, tuple) else items

    return data


# =============================================================================
# Audit Logging
# =============================================================================


class AuditEventType(Enum):
    """Types of audit events."""

    STARTUP = "startup"
    AUTH_FAILURE = "auth_failure"
    RATE_LIMIT = "rate_limit"
    TOOL_INVOCATION = "tool_invocation"


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.correlation_id is None:
            self.correlation_id = get_correlation_id() or None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
            "details": redact_sensitive_data(self.details),
        }
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        return result


class AuditLogger:
    """
    Structured audit logging for security-relevant events.

    Audit logs are written to a separate logger for easy filtering.
    """

    def __init__(self):
        self._logger = logging.getLogger(f"{__name__}.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._logger.info(
            f"AUDIT: {event.event_type.value}", extra={"audit": event.to_dict()}
        )

    def tool_invocation(
        self,
        tool_name: str,
        success: bool = True,
        duration_ms: Optional[float] = None,
        correlation_id: Optional[str] = None,
        **details: Any,
    ) -> None:
        """Log tool invocation."""
        self.log(
            AuditEvent(
                event_type=AuditEventType.TOOL_INVOCATION,
                correlation_id=correlation_id,
                details={
                    "tool": tool_name,
                    "success": success,
                    "duration_ms": duration_ms,
                    **details,
                },
            )
        )


_audit = AuditLogger()


def audit_log(event_type: str, **details: Any) -> None:
    """
    Convenience function for audit logging.

    Args:
        event_type: One of the ``AuditEventType`` values
        **details: Additional details to include in the audit log
    """
    try:
        event_enum = AuditEventType(event_type)
    except ValueError:
        event_enum = AuditEventType.TOOL_INVOCATION
        details["original_event_type"] = event_type

    _audit.log(AuditEvent(event_type=event_enum, details=details))


# =============================================================================
# Tool Instrumentation
# =============================================================================


def _response_succeeded(result: Any) -> bool:
    if isinstance(result, dict):
        return bool(result.get("success", True))
    return True


def mcp_tool(
    tool_name: Optional[str] = None, audit: bool = True
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for async MCP tool handlers.

    Establishes a request context (unless one is already active), times the
    call, and writes a ``tool_invocation`` audit entry. A handler that returns
    an error envelope (``success`` false) is audited as a failure even though
    it did not raise.

    Args:
        tool_name: Override tool name (defaults to function name)
        audit: Whether to create audit log entries
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError(f"mcp_tool requires an async handler, got {func!r}")

        name = tool_name or func.__name__

        async def _invoke(corr_id: str, args: tuple, kwargs: dict) -> Any:
            start = time.perf_counter()
            success = True
            error_msg = None
            try:
                result = await func(*args, **kwargs)
                success = _response_succeeded(result)
                if not success and isinstance(result, dict):
                    error_msg = result.get("error")
                return result
            except Exception as e:
                success = False
                error_msg = str(e)
                raise
            finally:
                duration_ms = (time.perf_counter() - start) * 1000
                logger.debug(
                    "Tool %s finished in %.1fms (success=%s)", name, duration_ms, success
                )
                if audit:
                    _audit.tool_invocation(
                        tool_name=name,
                        success=success,
                        duration_ms=round(duration_ms, 2),
                        error=error_msg,
                        correlation_id=corr_id,
                    )

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            existing_corr_id = get_correlation_id()
            if existing_corr_id:
                return await _invoke(existing_corr_id, args, kwargs)

            corr_id = generate_correlation_id(prefix="tool")
            with sync_request_context(correlation_id=corr_id, tool_name=name):
                return await _invoke(corr_id, args, kwargs)

        return async_wrapper

    return decorator
