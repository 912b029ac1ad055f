"""Tests for the rate-limit retry controller."""

import pytest

from magentic_orchestrator.core.cancellation import CancellationToken
from magentic_orchestrator.core.errors import ExecutionAborted
from magentic_orchestrator.core.retry_controller import (
    RateLimitRetrier,
    RetryConfig,
    is_rate_limit,
)
from magentic_orchestrator.llm.base import LLMError, RateLimitError, parse_retry_after


class Script:
    """Zero-argument coroutine factory replaying outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class TestParseRetryAfter:
    """Tests for retry hints embedded in error messages."""

    @pytest.mark.parametrize("message, expected", [
        ("Rate limit reached. Please try again in 5 seconds.", 5.0),
        ("quota exceeded, retry after 12s", 12.0),
        ("Please retry in 1.5 sec", 1.5),
        ("Try again in 30s", 30.0),
    ])
    def test_recognized(self, message, expected):
        assert parse_retry_after(message) == expected

    def test_no_hint(self):
        assert parse_retry_after("Internal server error") is None
        assert parse_retry_after(None) is None


class TestIsRateLimit:
    def test_rate_limit_error(self):
        assert is_rate_limit(RateLimitError("slow down", provider="claude"))

    def test_status_code(self):
        assert is_rate_limit(LLMError("too many", status_code=429))

    def test_message(self):
        assert is_rate_limit(Exception("rate_limit_error: too many requests"))
        assert is_rate_limit(Exception("Please try again in 5 seconds"))

    def test_other_errors(self):
        assert not is_rate_limit(LLMError("bad request", status_code=400))
        assert not is_rate_limit(ValueError("nope"))


class TestRateLimitRetrier:
    """Tests for RateLimitRetrier.call."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, no_sleep):
        retrier = RateLimitRetrier(CancellationToken())
        func = Script("ok")

        assert await retrier.call(func) == "ok"
        assert func.calls == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_with_hinted_wait(self, no_sleep):
        notifications = []
        retrier = RateLimitRetrier(
            CancellationToken(),
            on_wait=lambda wait, attempt, total: notifications.append((wait, attempt, total)),
        )
        func = Script(RateLimitError("Please try again in 5 seconds"), "answer")

        assert await retrier.call(func) == "answer"
        assert func.calls == 2
        assert notifications == [(5.0, 1, 3)]
        no_sleep.assert_awaited_once_with(5.0)

    @pytest.mark.asyncio
    async def test_budget_exhausted_reraises_last_error(self, no_sleep):
        errors = [RateLimitError(f"try again in 5 seconds ({i})") for i in range(3)]
        notifications = []
        retrier = RateLimitRetrier(
            CancellationToken(),
            RetryConfig(max_attempts=3),
            on_wait=lambda *args: notifications.append(args),
        )
        func = Script(*errors)

        with pytest.raises(RateLimitError) as exc_info:
            await retrier.call(func)

        assert exc_info.value is errors[-1]
        assert func.calls == 3
        # Sleeps only between attempts
        assert [c.args[0] for c in no_sleep.await_args_list] == [5.0, 5.0]
        assert notifications == [(5.0, 1, 3), (5.0, 2, 3)]

    @pytest.mark.asyncio
    async def test_retry_after_attribute_then_default(self, no_sleep):
        retrier = RateLimitRetrier(CancellationToken(), RetryConfig(default_wait_seconds=60.0))

        assert retrier.wait_seconds(RateLimitError("slow down", retry_after=7)) == 7.0
        assert retrier.wait_seconds(LLMError("throttled", status_code=429)) == 60.0

    @pytest.mark.asyncio
    async def test_max_wait_caps_hint(self):
        retrier = RateLimitRetrier(CancellationToken(), RetryConfig(max_wait_seconds=10.0))

        assert retrier.wait_seconds(RateLimitError("try again in 90 seconds")) == 10.0

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_not_retried(self, no_sleep):
        retrier = RateLimitRetrier(CancellationToken())
        func = Script(LLMError("invalid request", status_code=400), "unused")

        with pytest.raises(LLMError, match="invalid request"):
            await retrier.call(func)
        assert func.calls == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_before_call(self):
        token = CancellationToken()
        token.cancel()
        func = Script("unused")

        with pytest.raises(ExecutionAborted):
            await RateLimitRetrier(token).call(func)
        assert func.calls == 0

    @pytest.mark.asyncio
    async def test_abort_during_backoff(self):
        token = CancellationToken()
        retrier = RateLimitRetrier(
            token,
            on_wait=lambda *args: token.cancel(),
        )
        func = Script(RateLimitError("try again in 60 seconds"), "unused")

        with pytest.raises(ExecutionAborted):
            await retrier.call(func)
        assert func.calls == 1

    @pytest.mark.asyncio
    async def test_callback_failure_does_not_break_retry(self, no_sleep):
        def broken(*args):
            raise RuntimeError("display gone")

        retrier = RateLimitRetrier(CancellationToken(), on_wait=broken)
        func = Script(RateLimitError("try again in 1 seconds"), "ok")

        assert await retrier.call(func) == "ok"
