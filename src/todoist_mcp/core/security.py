"""
Input hygiene for values that reach the Todoist API.

Identifiers are interpolated into request paths (``/tasks/{id}/close``), so
each one is checked before any URL is built. The backend validates too; these
checks make sure a crafted value can never address a different endpoint.
"""

import logging
from typing import Any, Final, List, Optional, Sequence

from todoist_mcp.core.errors import InvalidArgumentError
from todoist_mcp.core.responses import ErrorCode

logger = logging.getLogger(__name__)

# =============================================================================
# Input Size Limits
# =============================================================================

MAX_ARRAY_LENGTH: Final[int] = 100
"""Maximum number of targets in one bulk call.

Matches the Sync API's cap of 100 commands per request, so a bulk operation
always fits in a single batch.
"""

MAX_STRING_LENGTH: Final[int] = 16_384
"""Maximum length for free-text fields (task content, descriptions, comments)."""

MAX_IDENTIFIER_LENGTH: Final[int] = 128
"""Maximum length of a resource identifier."""

API_TOKEN_MIN_LENGTH: Final[int] = 20
API_TOKEN_MAX_LENGTH: Final[int] = 200

_PATH_SEPARATORS: Final = ("/", "\\")


def _has_control_characters(value: str) -> bool:
    return any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value)


# =============================================================================
# Identifier Validation
# =============================================================================


def validate_identifier(value: Optional[str], field_name: str) -> str:
    """Check that ``value`` is safe to interpolate into a request path.

    Rules, in order: empty is rejected as missing; ``..``, a path separator,
    or a control character (below 0x20, or 0x7F) is rejected as invalid.
    Ordinary punctuation such as a hyphen or a single dot is fine.

    Args:
        value: The identifier supplied by the caller
        field_name: Parameter name used in the error message

    Returns:
        The identifier, unchanged

    Raises:
        InvalidArgumentError: "<field> is required" or
            "<field> contains invalid characters"

    Example:
        >>> validate_identifier("6X7rM8997g3RQmvh", "task_id")
        '6X7rM8997g3RQmvh'
    """
    if not value:
        raise InvalidArgumentError(
            f"{field_name} is required",
            field=field_name,
            error_code=ErrorCode.MISSING_REQUIRED,
        )

    if not isinstance(value, str):
        raise InvalidArgumentError(
            f"{field_name} must be a string",
            field=field_name,
            error_code=ErrorCode.INVALID_FORMAT,
        )

    if (
        ".." in value
        or any(sep in value for sep in _PATH_SEPARATORS)
        or _has_control_characters(value)
        or len(value) > MAX_IDENTIFIER_LENGTH
    ):
        logger.warning(
            "Rejected malformed identifier",
            extra={"field": field_name, "length": len(value)},
        )
        raise InvalidArgumentError(
            f"{field_name} contains invalid characters",
            field=field_name,
            error_code=ErrorCode.INVALID_FORMAT,
        )

    return value


def validate_optional_identifier(value: Optional[str], field_name: str) -> Optional[str]:
    """Like ``validate_identifier`` but lets ``None`` and "" through as absent."""
    if not value:
        return None
    return validate_identifier(value, field_name)


def validate_identifiers(
    values: Optional[Sequence[str]],
    field_name: str,
    *,
    max_items: int = MAX_ARRAY_LENGTH,
) -> List[str]:
    """Validate a list of identifiers, dropping duplicates but keeping order.

    Raises:
        InvalidArgumentError: if the list is longer than ``max_items`` or any
            element is malformed (the message names the element index)
    """
    if not values:
        return []
    if len(values) > max_items:
        raise InvalidArgumentError(
            f"{field_name} has {len(values)} items; at most {max_items} are allowed per call",
            field=field_name,
            remediation="Split the work into several calls.",
        )

    seen = set()
    result: List[str] = []
    for index, value in enumerate(values):
        validate_identifier(value, f"{field_name}[{index}]")
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


# =============================================================================
# Field Validation
# =============================================================================


def require_text(
    value: Optional[str], field_name: str, *, max_length: int = MAX_STRING_LENGTH
) -> str:
    """Require a non-blank text field no longer than ``max_length``."""
    if value is None or not value.strip():
        raise InvalidArgumentError(
            f"{field_name} is required",
            field=field_name,
            error_code=ErrorCode.MISSING_REQUIRED,
        )
    return validate_text_length(value, field_name, max_length=max_length)


def validate_text_length(
    value: str, field_name: str, *, max_length: int = MAX_STRING_LENGTH
) -> str:
    if len(value) > max_length:
        raise InvalidArgumentError(
            f"{field_name} is too long ({len(value)} characters, max {max_length})",
            field=field_name,
        )
    return value


def validate_priority(priority: Any) -> Optional[int]:
    """Check a Todoist priority: 1 (normal) through 4 (urgent)."""
    if priority is None:
        return None
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 4:
        raise InvalidArgumentError(
            "priority must be between 1 (normal) and 4 (urgent)",
            field="priority",
        )
    return priority


# =============================================================================
# Credential Validation
# =============================================================================


def validate_api_token(token: Optional[str]) -> str:
    """Check the shape of a Todoist API token before it is ever sent.

    Raises:
        ValueError: describing the first problem found
    """
    if not token:
        raise ValueError(
            "TODOIST_API_TOKEN environment variable is required "
            "(get your token from https://todoist.com/prefs/integrations)"
        )
    if len(token) < API_TOKEN_MIN_LENGTH:
        raise ValueError(
            f"TODOIST_API_TOKEN appears too short ({len(token)} characters, "
            f"expected at least {API_TOKEN_MIN_LENGTH})"
        )
    if len(token) > API_TOKEN_MAX_LENGTH:
        raise ValueError(
            f"TODOIST_API_TOKEN is too long ({len(token)} characters, "
            f"expected at most {API_TOKEN_MAX_LENGTH})"
        )
    if any(ch.isspace() for ch in token):
        raise ValueError("TODOIST_API_TOKEN contains whitespace characters")
    if _has_control_characters(token):
        raise ValueError("TODOIST_API_TOKEN contains control characters")
    return token
