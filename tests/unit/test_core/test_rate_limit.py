"""
Unit tests for todoist_mcp.core.rate_limit module.

Tests the shared sliding window: capacity, window advance, refusal without
recording, status snapshots, and atomic admission under concurrency.
"""

import threading

import pytest

from todoist_mcp.core.errors import RateLimitExceededError
from todoist_mcp.core.rate_limit import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW_SECONDS,
    RateLimitConfig,
    SlidingWindowRateLimiter,
)
from tests.conftest import FakeClock


def _limiter(clock, max_requests=450, window_seconds=900):
    return SlidingWindowRateLimiter(
        RateLimitConfig(max_requests=max_requests, window_seconds=window_seconds),
        clock=clock,
    )


# =============================================================================
# Defaults
# =============================================================================


class TestDefaults:
    """Test the default window configuration."""

    def test_default_capacity(self):
        """Todoist allows 450 requests per 15 minutes."""
        assert DEFAULT_MAX_REQUESTS == 450
        assert DEFAULT_WINDOW_SECONDS == 900

    def test_default_limiter_uses_defaults(self):
        """A limiter built without config uses the Todoist window."""
        limiter = SlidingWindowRateLimiter()
        assert limiter.config.max_requests == 450
        assert limiter.config.window_seconds == 900
        assert limiter.remaining() == 450

    def test_invalid_config_rejected(self):
        """Zero capacity or a non-positive window is a programming error."""
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(RateLimitConfig(max_requests=0))
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(RateLimitConfig(window_seconds=0))

    def test_describe_window(self):
        """Whole-minute windows are described in minutes."""
        assert RateLimitConfig().describe_window() == "15 minutes"
        assert RateLimitConfig(window_seconds=90.5).describe_window() == "90.5 seconds"


# =============================================================================
# Admission
# =============================================================================


class TestAdmission:
    """Test try_admit and the window bookkeeping."""

    def test_admits_up_to_capacity(self):
        """Exactly 450 admissions succeed at one instant; the 451st is refused."""
        clock = FakeClock()
        limiter = _limiter(clock)

        for _ in range(450):
            limiter.try_admit()

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.try_admit()

        assert exc_info.value.message == (
            "rate limit reached: 450 requests in the last 15 minutes (max: 450)"
        )
        assert exc_info.value.current == 450
        assert exc_info.value.capacity == 450

    def test_refusal_records_nothing(self):
        """A refused admission does not extend the window."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=2, window_seconds=10)
        limiter.try_admit()
        limiter.try_admit()

        for _ in range(5):
            with pytest.raises(RateLimitExceededError):
                limiter.try_admit()

        clock.advance(10)
        assert limiter.remaining() == 2

    def test_capacity_returns_after_window(self):
        """After 15 minutes the full capacity is available again."""
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(450):
            limiter.try_admit()

        clock.advance(899.9)
        assert limiter.remaining() == 0

        clock.advance(0.1)
        assert limiter.remaining() == 450
        limiter.try_admit()

    def test_sliding_not_fixed_window(self):
        """Admissions age out individually, oldest first."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=3, window_seconds=60)

        limiter.try_admit()
        clock.advance(20)
        limiter.try_admit()
        clock.advance(20)
        limiter.try_admit()
        assert limiter.remaining() == 0

        clock.advance(20)
        assert limiter.remaining() == 1
        clock.advance(20)
        assert limiter.remaining() == 2

    def test_retry_after_reported(self):
        """The refusal says when the oldest admission leaves the window."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1, window_seconds=60)
        limiter.try_admit()
        clock.advance(15)

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.try_admit()

        assert exc_info.value.retry_after == pytest.approx(45)
        assert exc_info.value.details["retry_after_seconds"] == 45.0


# =============================================================================
# Status
# =============================================================================


class TestStatus:
    """Test remaining, reset_in, snapshot and stats."""

    def test_remaining_counts_down(self):
        """remaining() drops by one per admission."""
        limiter = _limiter(FakeClock())
        limiter.try_admit()
        limiter.try_admit()
        assert limiter.remaining() == 448

    def test_reset_in_zero_when_empty(self):
        """An empty window resets immediately."""
        assert _limiter(FakeClock()).reset_in() == 0.0

    def test_snapshot_shape(self):
        """snapshot() feeds meta.rate_limit."""
        clock = FakeClock()
        limiter = _limiter(clock)
        limiter.try_admit()
        clock.advance(100)

        assert limiter.snapshot() == {
            "limit": 450,
            "remaining": 449,
            "window_seconds": 900,
            "reset_in_seconds": 800.0,
        }

    def test_stats_count_throttles(self):
        """get_stats() reports admitted and throttled totals."""
        limiter = _limiter(FakeClock(), max_requests=1)
        limiter.try_admit()
        with pytest.raises(RateLimitExceededError):
            limiter.try_admit()

        stats = limiter.get_stats()
        assert stats["admitted"] == 1
        assert stats["throttled"] == 1


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    """Test that admission is atomic across threads."""

    def test_concurrent_admissions_all_counted(self):
        """K concurrent callers below capacity all succeed with no lost updates."""
        limiter = _limiter(FakeClock(), max_requests=450)
        start = threading.Barrier(50)
        errors = []

        def worker():
            start.wait()
            try:
                limiter.try_admit()
            except RateLimitExceededError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert limiter.remaining() == 400

    def test_no_over_admission_under_contention(self):
        """Many threads racing for the last units never exceed capacity."""
        limiter = _limiter(FakeClock(), max_requests=100)
        admitted = []
        refused = []
        lock = threading.Lock()
        start = threading.Barrier(20)

        def worker():
            start.wait()
            for _ in range(10):
                try:
                    limiter.try_admit()
                except RateLimitExceededError:
                    with lock:
                        refused.append(1)
                else:
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(admitted) == 100
        assert len(refused) == 100
        assert limiter.remaining() == 0
