"""
Rate limiting for outbound Todoist calls.

Todoist enforces one quota (450 requests per 15 minutes) across the REST and
Sync APIs together. A single ``SlidingWindowRateLimiter`` is therefore built
per process and handed to both dispatchers; admitting through two separate
instances would let each allow the full quota on its own.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict

from todoist_mcp.core.errors import RateLimitExceededError
from todoist_mcp.core.observability import audit_log

logger = logging.getLogger(__name__)


DEFAULT_MAX_REQUESTS = 450
DEFAULT_WINDOW_SECONDS = 15 * 60.0


@dataclass
class RateLimitConfig:
    """
    Configuration for the shared request window.
    """
    max_requests: int = DEFAULT_MAX_REQUESTS
    window_seconds: float = DEFAULT_WINDOW_SECONDS

    def describe_window(self) -> str:
        minutes = self.window_seconds / 60
        if minutes == int(minutes):
            return f"{int(minutes)} minutes"
        return f"{self.window_seconds:g} seconds"


class SlidingWindowRateLimiter:
    """
    Sliding-window admission gate shared by every backend call.

    Each admission records its timestamp; a timestamp counts against the
    capacity until it is ``window_seconds`` old. The check and the record
    happen under one lock, so concurrent callers can never both take the last
    unit of capacity.
    """

    def __init__(
        self,
        config: RateLimitConfig = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            config: Window size and capacity (defaults to 450 per 15 minutes)
            clock: Monotonic time source, injectable for tests
        """
        self.config = config or RateLimitConfig()
        if self.config.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.config.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._clock = clock
        self._lock = threading.Lock()
        self._timestamps: Deque[float] = deque()
        self._admitted = 0
        self._throttled = 0

    def _purge(self, now: float) -> None:
        """Drop admissions that have aged out of the window. Caller holds the lock."""
        cutoff = now - self.config.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def try_admit(self) -> None:
        """
        Admit one request or refuse it.

        Raises:
            RateLimitExceededError: if the window is full; nothing is recorded
        """
        with self._lock:
            now = self._clock()
            self._purge(now)
            count = len(self._timestamps)
            if count < self.config.max_requests:
                self._timestamps.append(now)
                self._admitted += 1
                return
            self._throttled += 1
            retry_after = self._timestamps[0] + self.config.window_seconds - now

        error = RateLimitExceededError(
            f"rate limit reached: {count} requests in the last "
            f"{self.config.describe_window()} (max: {self.config.max_requests})",
            current=count,
            capacity=self.config.max_requests,
            retry_after=retry_after,
        )
        self._log_throttle(error)
        raise error

    def remaining(self) -> int:
        """Admissions still available in the current window."""
        with self._lock:
            self._purge(self._clock())
            return self.config.max_requests - len(self._timestamps)

    def reset_in(self) -> float:
        """Seconds until the oldest admission leaves the window (0 when empty)."""
        with self._lock:
            now = self._clock()
            self._purge(now)
            if not self._timestamps:
                return 0.0
            return max(self._timestamps[0] + self.config.window_seconds - now, 0.0)

    def snapshot(self) -> Dict[str, Any]:
        """Window state in the shape used for ``meta.rate_limit``."""
        return {
            "limit": self.config.max_requests,
            "remaining": self.remaining(),
            "window_seconds": self.config.window_seconds,
            "reset_in_seconds": round(self.reset_in(), 1),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get limiter statistics."""
        with self._lock:
            admitted = self._admitted
            throttled = self._throttled
        return {
            "admitted": admitted,
            "throttled": throttled,
            **self.snapshot(),
        }

    def _log_throttle(self, error: RateLimitExceededError) -> None:
        """Log a throttle event."""
        audit_log(
            "rate_limit",
            limit=error.capacity,
            current=error.current,
            retry_after=round(error.retry_after or 0.0, 1),
            success=False,
        )
        logger.warning("Local rate limit hit: %s", error.message)
