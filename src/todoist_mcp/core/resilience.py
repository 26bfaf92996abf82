"""
Resilience primitives for Todoist backend calls.

Provides the per-invocation deadline and the bounded retry policy used by
the dispatchers.

Timeout Budget Categories
=========================

    FAST_TIMEOUT (5s)     - Startup connectivity probe
    MEDIUM_TIMEOUT (30s)  - One HTTP request, one tool invocation

Example usage:

    from todoist_mcp.core.resilience import RetryPolicy, run_with_deadline

    policy = RetryPolicy()
    task = await run_with_deadline(
        policy.run(lambda: rest.get("/tasks/123")),
        MEDIUM_TIMEOUT,
        operation="get_task",
    )
"""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from todoist_mcp.core.errors import DeadlineExceededError, RetryableError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Timeout Budget Constants
# ---------------------------------------------------------------------------

#: Fast operations: connectivity probe
FAST_TIMEOUT: float = 5.0

#: Medium operations: a single API call, a whole tool invocation
MEDIUM_TIMEOUT: float = 30.0

DEFAULT_MAX_ATTEMPTS: int = 3
DEFAULT_BASE_DELAY: float = 0.5
DEFAULT_MAX_DELAY: float = 5.0


T = TypeVar("T")


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------


async def run_with_deadline(
    awaitable: Awaitable[T],
    seconds: float,
    *,
    operation: Optional[str] = None,
) -> T:
    """Await ``awaitable`` but give up after ``seconds``.

    On expiry the inner task is cancelled, which cancels any in-flight HTTP
    request or backoff sleep beneath it.

    Raises:
        DeadlineExceededError: if the deadline elapses first
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        name = operation or "operation"
        raise DeadlineExceededError(
            f"{name} timed out after {seconds:g}s",
            timeout_seconds=seconds,
            operation=operation,
        ) from exc


def with_timeout(
    seconds: float,
    error_message: Optional[str] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator to add a deadline to async functions.

    Args:
        seconds: Timeout duration in seconds.
        error_message: Custom error message (defaults to function name).

    Example:
        >>> @with_timeout(FAST_TIMEOUT, "Connectivity probe timed out")
        ... async def probe():
        ...     return await rest.get("/projects")

    Raises:
        DeadlineExceededError: If the operation exceeds the timeout.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=seconds)
            except asyncio.TimeoutError as exc:
                msg = error_message or f"{func.__name__} timed out after {seconds:g}s"
                raise DeadlineExceededError(
                    msg,
                    timeout_seconds=seconds,
                    operation=func.__name__,
                ) from exc

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Retry with Backoff
# ---------------------------------------------------------------------------


def backoff_delay(
    attempt: int,
    *,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> float:
    """Delay before retry number ``attempt + 1``: ``min(base * 2**attempt, max)``."""
    return min(base_delay * (2**attempt), max_delay)


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for idempotent backend operations.

    Only ``RetryableError`` (backend 429, backend 5xx, transport failures)
    triggers a retry. Any other exception propagates on the first attempt.
    Cancellation during a backoff sleep propagates as ``CancelledError``
    without another attempt being made.

    Never wrap a create: if the backend applied it but the response was lost,
    a retry would create a duplicate.

    Attributes:
        max_attempts: Total attempts including the first (default 3)
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap on any single delay, in seconds
        sleep: Awaitable sleep function, injectable for tests
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, base_delay=self.base_delay, max_delay=self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        max_attempts: Optional[int] = None,
        description: str = "request",
    ) -> T:
        """Run ``operation`` until it succeeds, fails terminally, or attempts run out.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            max_attempts: Override for this call
            description: Label used in log lines

        Returns:
            The operation's result

        Raises:
            RetryableError: the last transient error, once attempts are exhausted
            TodoistError: any non-retryable error, immediately
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        last_error: Optional[RetryableError] = None
        for attempt in range(attempts):
            try:
                return await operation()
            except RetryableError as exc:
                last_error = exc
                if attempt == attempts - 1:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "Retrying %s in %.1fs (attempt %d/%d): %s",
                    description,
                    delay,
                    attempt + 1,
                    attempts,
                    exc,
                )
                await self.sleep(delay)

        logger.warning("Giving up on %s after %d attempts", description, attempts)
        raise last_error
