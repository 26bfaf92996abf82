"""
Error taxonomy for Todoist backend calls.

Every failure the dispatch layer can produce is one of the classes below.
Callers branch on the class (or on ``retryable``) rather than on message
text: ``RetryPolicy`` retries ``RetryableError`` subclasses and nothing else,
and the tool boundary turns any ``TodoistError`` into an error envelope via
``to_response()``.

    TodoistError
    ├── InvalidArgumentError        local validation, never reaches the network
    ├── RateLimitExceededError      local admission denied
    ├── AuthenticationFailedError   HTTP 401
    ├── ForbiddenError              HTTP 403
    ├── NotFoundError               HTTP 404
    ├── UnexpectedStatusError       any other non-2xx (400, 409, ...)
    ├── ResponseDecodeError         malformed body in a 2xx response
    ├── DeadlineExceededError       tool deadline elapsed
    └── RetryableError
        ├── BackendRateLimitedError HTTP 429
        ├── BackendUnavailableError HTTP 5xx
        └── TransportFailureError   connect/DNS/timeout before a response
"""

from typing import Any, Dict, Mapping, Optional

from todoist_mcp.core.responses import ErrorCode, ErrorType, ToolResponse, error_response

TOKEN_HELP_URL = "https://todoist.com/prefs/integrations"

_MAX_BODY_IN_MESSAGE = 200


class TodoistError(Exception):
    """Base exception for dispatch-layer failures.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code if the backend answered
        remediation: What the agent should do about it
        details: Extra machine-readable context for the error envelope
    """

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    error_type: ErrorType = ErrorType.INTERNAL
    retryable: bool = False
    default_remediation: Optional[str] = None

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        remediation: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.remediation = remediation or self.default_remediation
        self.details: Dict[str, Any] = dict(details) if details else {}

    @property
    def cause(self) -> Optional[BaseException]:
        """The lower-level exception this error was raised from, if any."""
        return self.__cause__

    def to_response(
        self,
        *,
        request_id: Optional[str] = None,
        rate_limit: Optional[Mapping[str, Any]] = None,
    ) -> ToolResponse:
        details = dict(self.details)
        if self.status_code is not None:
            details.setdefault("status_code", self.status_code)
        return error_response(
            self.message,
            error_code=self.error_code,
            error_type=self.error_type,
            remediation=self.remediation,
            details=details or None,
            request_id=request_id,
            rate_limit=rate_limit,
        )


class InvalidArgumentError(TodoistError):
    """Local validation failure (missing field, malformed ID, out-of-range value)."""

    error_code = ErrorCode.VALIDATION_ERROR
    error_type = ErrorType.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        remediation: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
    ):
        super().__init__(
            message,
            remediation=remediation,
            details={"field": field} if field else None,
        )
        self.field = field
        if error_code is not None:
            self.error_code = error_code


class RateLimitExceededError(TodoistError):
    """The shared local rate window has no capacity left.

    Attributes:
        current: Requests counted in the window
        capacity: Window capacity
        needed: Requests a bulk call asked for, when the refusal is a capacity check
        retry_after: Seconds until the oldest admission ages out
    """

    error_code = ErrorCode.RATE_LIMIT_EXCEEDED
    error_type = ErrorType.RATE_LIMIT
    default_remediation = (
        "Wait for the 15 minute window to advance before retrying, "
        "or use a bulk tool so many changes share one request."
    )

    def __init__(
        self,
        message: str,
        *,
        current: int,
        capacity: int,
        retry_after: Optional[float] = None,
        needed: Optional[int] = None,
    ):
        details: Dict[str, Any] = {"current": current, "capacity": capacity}
        if needed is not None:
            details["needed"] = needed
        if retry_after is not None:
            details["retry_after_seconds"] = round(retry_after, 1)
        super().__init__(message, details=details)
        self.current = current
        self.capacity = capacity
        self.needed = needed
        self.retry_after = retry_after


class AuthenticationFailedError(TodoistError):
    """HTTP 401 from the backend."""

    error_code = ErrorCode.UNAUTHORIZED
    error_type = ErrorType.AUTHENTICATION
    default_remediation = (
        f"Generate a new API token at {TOKEN_HELP_URL} and set TODOIST_API_TOKEN."
    )


class ForbiddenError(TodoistError):
    """HTTP 403 from the backend."""

    error_code = ErrorCode.FORBIDDEN
    error_type = ErrorType.AUTHORIZATION
    default_remediation = "Check that the resource is shared with your account."


class NotFoundError(TodoistError):
    """HTTP 404 from the backend."""

    error_code = ErrorCode.NOT_FOUND
    error_type = ErrorType.NOT_FOUND
    default_remediation = (
        "Verify the ID with the matching list tool "
        "(search_tasks, list_projects, list_sections, list_labels, get_comments)."
    )


class UnexpectedStatusError(TodoistError):
    """Any non-2xx status outside the classified set."""

    error_code = ErrorCode.BACKEND_ERROR
    error_type = ErrorType.VALIDATION
    default_remediation = "Check the request fields against the Todoist API documentation."


class ResponseDecodeError(TodoistError):
    """A 2xx response whose body is not the JSON we expect."""

    error_code = ErrorCode.DECODE_ERROR
    error_type = ErrorType.INTERNAL


class DeadlineExceededError(TodoistError):
    """The per-invocation deadline elapsed.

    Attributes:
        timeout_seconds: The deadline that was exceeded
        operation: Name of the operation that timed out
    """

    error_code = ErrorCode.TIMEOUT
    error_type = ErrorType.TIMEOUT
    default_remediation = "Retry the call; for bulk work, submit fewer targets at once."

    def __init__(
        self,
        message: str,
        *,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details)
        self.timeout_seconds = timeout_seconds
        self.operation = operation


class RetryableError(TodoistError):
    """A transient failure that an idempotent operation may retry."""

    retryable = True
    error_type = ErrorType.UNAVAILABLE


class BackendRateLimitedError(RetryableError):
    """HTTP 429 from the backend.

    Attributes:
        retry_after: Seconds the backend asked us to wait, when it said
    """

    error_code = ErrorCode.BACKEND_RATE_LIMITED
    error_type = ErrorType.RATE_LIMIT
    default_remediation = "Wait a minute before calling Todoist tools again."

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = 429,
        retry_after: Optional[float] = None,
    ):
        details = {"retry_after_seconds": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=status_code, details=details)
        self.retry_after = retry_after


class BackendUnavailableError(RetryableError):
    """HTTP 5xx from the backend."""

    error_code = ErrorCode.BACKEND_UNAVAILABLE
    default_remediation = "Todoist is having trouble; try again in a few minutes."


class TransportFailureError(RetryableError):
    """No response was received (connection, DNS, or timeout failure)."""

    error_code = ErrorCode.TRANSPORT_ERROR
    default_remediation = "Check network connectivity to api.todoist.com and retry."


# ---------------------------------------------------------------------------
# Status classification
# ---------------------------------------------------------------------------


def _truncate(body: str) -> str:
    body = body.strip()
    if len(body) > _MAX_BODY_IN_MESSAGE:
        return body[:_MAX_BODY_IN_MESSAGE] + "..."
    return body


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def classify_status(
    status_code: int,
    body: str = "",
    *,
    retry_after: Optional[float] = None,
) -> TodoistError:
    """Map a non-2xx HTTP status onto the error taxonomy.

    Args:
        status_code: HTTP status of the response
        body: Response body text (only echoed for unclassified statuses)
        retry_after: Parsed ``Retry-After`` header, if present

    Returns:
        The exception to raise. Never returns a generic ``TodoistError``.
    """
    if status_code == 401:
        return AuthenticationFailedError(
            "authentication failed: invalid API token "
            f"(get a valid token from {TOKEN_HELP_URL})",
            status_code=status_code,
        )
    if status_code == 403:
        return ForbiddenError(
            "access forbidden: you don't have permission to access this resource",
            status_code=status_code,
        )
    if status_code == 404:
        return NotFoundError(
            "resource not found: the requested item doesn't exist",
            status_code=status_code,
        )
    if status_code == 429:
        return BackendRateLimitedError(
            "rate limit exceeded: too many requests (max 450 per 15 minutes). "
            "Please wait and try again",
            retry_after=retry_after,
        )
    if status_code >= 500:
        return BackendUnavailableError(
            f"Todoist server error (status {status_code}): please try again later",
            status_code=status_code,
        )
    return UnexpectedStatusError(
        f"API error (status {status_code}): {_truncate(body)}",
        status_code=status_code,
    )
