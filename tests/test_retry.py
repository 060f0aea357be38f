"""Tests for the retry engine.

Delays are captured with an injected sleep so backoff sequences can be
asserted exactly without waiting.
"""

from __future__ import annotations

import pytest

from src.summarizer.core.errors import ClassifiedError, ErrorKind
from src.summarizer.core.retry import RetryEngine, RetryPolicy, execute_with_retry
from src.summarizer.observability.metrics import MetricsAggregator


class HttpError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class FlakyOperation:
    """Fails with the queued errors, then returns result."""

    def __init__(self, errors: list[Exception], result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


# ── RetryPolicy ──────────────────────────────────────────────────────────────


class TestRetryPolicy:
    def test_delay_doubles_from_base(self):
        policy = RetryPolicy(max_attempts=3, base_delay_seconds=0.5)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_email_base_delay_sequence(self):
        policy = RetryPolicy(max_attempts=2, base_delay_seconds=1.0)

        assert [policy.delay_for(n) for n in (1, 2)] == [2.0, 4.0]

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(base_delay_seconds=0.5, jitter_seconds=0.25)

        for _ in range(20):
            assert 1.0 <= policy.delay_for(1) <= 1.25

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": -1},
            {"base_delay_seconds": 0},
            {"jitter_seconds": -0.1},
        ],
    )
    def test_invalid_policy_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


# ── RetryEngine ──────────────────────────────────────────────────────────────


class TestRetryEngine:
    async def test_success_on_first_attempt_never_sleeps(self, sleep):
        operation = FlakyOperation([])
        engine = RetryEngine(RetryPolicy(), "llm", sleep=sleep)

        assert await engine.execute(operation) == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_retries_retryable_failures_then_succeeds(self, sleep, metrics):
        operation = FlakyOperation([HttpError("unavailable", 503), HttpError("unavailable", 503)])
        engine = RetryEngine(
            RetryPolicy(max_attempts=2, base_delay_seconds=0.5), "llm", metrics=metrics, sleep=sleep
        )

        assert await engine.execute(operation) == "ok"
        assert operation.calls == 3
        assert sleep.delays == [1.0, 2.0]
        assert metrics.get("llm").retry_count == 2
        assert metrics.get("llm").attempt_count == 3

    async def test_non_retryable_failure_is_not_retried(self, sleep):
        operation = FlakyOperation([HttpError("bad request", 400)])
        engine = RetryEngine(RetryPolicy(max_attempts=3), "llm", sleep=sleep)

        with pytest.raises(ClassifiedError) as exc_info:
            await engine.execute(operation)

        assert exc_info.value.kind == ErrorKind.VALIDATION_FAULT
        assert operation.calls == 1
        assert sleep.delays == []

    async def test_exhausted_budget_raises_last_classified_error(self, sleep):
        operation = FlakyOperation([HttpError("busy", 429)] * 5)
        engine = RetryEngine(RetryPolicy(max_attempts=2, base_delay_seconds=1.0), "email", sleep=sleep)

        with pytest.raises(ClassifiedError) as exc_info:
            await engine.execute(operation)

        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert operation.calls == 3
        assert sleep.delays == [2.0, 4.0]

    async def test_zero_max_attempts_calls_once(self, sleep):
        operation = FlakyOperation([HttpError("unavailable", 503)])
        engine = RetryEngine(RetryPolicy(max_attempts=0), "llm", sleep=sleep)

        with pytest.raises(ClassifiedError):
            await engine.execute(operation)

        assert operation.calls == 1

    async def test_raw_error_is_chained_to_classification(self, sleep):
        raw = HttpError("bad request", 400)
        engine = RetryEngine(RetryPolicy(), "llm", sleep=sleep)

        with pytest.raises(ClassifiedError) as exc_info:
            await engine.execute(FlakyOperation([raw]))

        assert exc_info.value.__cause__ is raw

    async def test_classified_errors_raised_by_operation_are_kept(self, sleep):
        error = ClassifiedError.validation("Empty response received from AI provider")
        engine = RetryEngine(RetryPolicy(), "llm", sleep=sleep)

        with pytest.raises(ClassifiedError) as exc_info:
            await engine.execute(FlakyOperation([error]))

        assert exc_info.value is error

    async def test_execute_with_retry_helper(self, sleep):
        metrics = MetricsAggregator()
        operation = FlakyOperation([ConnectionResetError("reset")], result="done")

        result = await execute_with_retry(
            operation, RetryPolicy(base_delay_seconds=0.5), component="email", metrics=metrics, sleep=sleep
        )

        assert result == "done"
        assert sleep.delays == [1.0]
        assert metrics.get("email").retry_count == 1
