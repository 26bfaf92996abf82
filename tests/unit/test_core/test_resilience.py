"""
Unit tests for todoist_mcp.core.resilience module.

Tests deadline enforcement, backoff arithmetic, and the retry policy's
handling of transient, terminal and cancelled operations.
"""

import asyncio

import pytest

from todoist_mcp.core.errors import (
    BackendUnavailableError,
    DeadlineExceededError,
    NotFoundError,
    TransportFailureError,
)
from todoist_mcp.core.resilience import (
    MEDIUM_TIMEOUT,
    RetryPolicy,
    backoff_delay,
    run_with_deadline,
)


class RecordingSleep:
    """Sleep stand-in that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


# =============================================================================
# Deadlines
# =============================================================================


class TestDeadlines:
    """Test run_with_deadline."""

    def test_medium_timeout_value(self):
        """A request and a tool invocation are both bounded by 30 seconds."""
        assert MEDIUM_TIMEOUT == 30.0

    @pytest.mark.asyncio
    async def test_returns_result_in_time(self):
        """A quick operation returns its value."""

        async def quick():
            return 42

        assert await run_with_deadline(quick(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_raises_deadline_exceeded(self):
        """A slow operation is cancelled and reported as a deadline error."""

        async def slow():
            await asyncio.sleep(10)

        with pytest.raises(DeadlineExceededError) as exc_info:
            await run_with_deadline(slow(), 0.01, operation="get_task")

        assert exc_info.value.message == "get_task timed out after 0.01s"
        assert isinstance(exc_info.value.cause, asyncio.TimeoutError)


# =============================================================================
# Backoff
# =============================================================================


class TestBackoff:
    """Test the exponential delay schedule."""

    def test_schedule(self):
        """Delays double from 0.5s and cap at 5s."""
        assert [backoff_delay(i) for i in range(6)] == [0.5, 1.0, 2.0, 4.0, 5.0, 5.0]

    def test_policy_uses_schedule(self):
        """RetryPolicy.delay_for applies its own base and cap."""
        policy = RetryPolicy(base_delay=1.0, max_delay=3.0)
        assert [policy.delay_for(i) for i in range(3)] == [1.0, 2.0, 3.0]


# =============================================================================
# Retry Policy
# =============================================================================


class TestRetryPolicy:
    """Test RetryPolicy.run."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        """No sleep when the first attempt succeeds."""
        sleep = RecordingSleep()
        calls = []

        async def operation():
            calls.append(1)
            return "ok"

        assert await RetryPolicy(sleep=sleep).run(operation) == "ok"
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        """Transient failures are retried with backoff."""
        sleep = RecordingSleep()
        outcomes = [TransportFailureError("reset"), BackendUnavailableError("503"), "done"]

        async def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert await RetryPolicy(sleep=sleep).run(operation) == "done"
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self):
        """After three attempts the last transient error propagates."""
        sleep = RecordingSleep()
        calls = []

        async def operation():
            calls.append(1)
            raise BackendUnavailableError(f"down {len(calls)}", status_code=503)

        with pytest.raises(BackendUnavailableError, match="down 3"):
            await RetryPolicy(sleep=sleep).run(operation)

        assert len(calls) == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_terminal_error_not_retried(self):
        """A non-retryable error propagates on the first attempt."""
        calls = []

        async def operation():
            calls.append(1)
            raise NotFoundError("resource not found", status_code=404)

        with pytest.raises(NotFoundError):
            await RetryPolicy(sleep=RecordingSleep()).run(operation)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_max_attempts_override(self):
        """max_attempts can be lowered per call."""
        calls = []

        async def operation():
            calls.append(1)
            raise TransportFailureError("reset")

        with pytest.raises(TransportFailureError):
            await RetryPolicy(sleep=RecordingSleep()).run(operation, max_attempts=1)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_invalid_attempts(self):
        """Fewer than one attempt is a programming error."""

        async def operation():
            return None

        with pytest.raises(ValueError):
            await RetryPolicy().run(operation, max_attempts=0)

    @pytest.mark.asyncio
    async def test_cancellation_during_backoff(self):
        """Cancelling during a backoff sleep stops without another attempt."""
        calls = []
        sleeping = asyncio.Event()

        async def blocking_sleep(_):
            sleeping.set()
            await asyncio.sleep(10)

        async def operation():
            calls.append(1)
            raise TransportFailureError("reset")

        task = asyncio.create_task(RetryPolicy(sleep=blocking_sleep).run(operation))
        await sleeping.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(calls) == 1
