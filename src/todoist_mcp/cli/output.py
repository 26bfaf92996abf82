"""JSON output helpers for the operator CLI.

Success envelopes go to stdout, error envelopes to stderr, both minified and
in the response-v2 shape the MCP tools return.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Optional, Sequence

from todoist_mcp.core.context import generate_correlation_id
from todoist_mcp.core.errors import TodoistError
from todoist_mcp.core.responses import error_response, success_response


def emit(data: Any) -> None:
    """Emit minified JSON to stdout."""
    print(json.dumps(data, separators=(",", ":"), default=str))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Emit an error envelope to stderr and exit with code 1."""
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
        request_id=generate_correlation_id(prefix="cli"),
    )
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)


def emit_success(
    data: Mapping[str, Any],
    *,
    warnings: Optional[Sequence[str]] = None,
) -> None:
    """Emit a success envelope to stdout."""
    response = success_response(
        data=data,
        warnings=warnings,
        request_id=generate_correlation_id(prefix="cli"),
    )
    emit(asdict(response))


def emit_exception(exc: TodoistError) -> NoReturn:
    """Emit a taxonomy error as its envelope on stderr and exit with code 1."""
    response = exc.to_response(request_id=generate_correlation_id(prefix="cli"))
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)
