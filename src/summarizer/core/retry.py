"""Bounded retry with exponential backoff for external calls.

Built on tenacity's AsyncRetrying. Each attempt's failure is classified
(see core.errors); only retryable kinds are tried again, and never more
than ``max_attempts`` times after the first call. The delay before retry
number n is ``base_delay_seconds * 2**n``, so a 0.5s base yields 1s, 2s, 4s
and a 1s base yields 2s, 4s, 8s.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from src.summarizer.core.errors import ClassifiedError, classify
from src.summarizer.observability.metrics import MetricsAggregator

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration, built once per adapter."""

    max_attempts: int = 2
    base_delay_seconds: float = 0.5
    jitter_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_delay_seconds <= 0:
            raise ValueError("base_delay_seconds must be > 0")
        if self.jitter_seconds < 0:
            raise ValueError("jitter_seconds must be >= 0")

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry ``retry_number`` (1-based)."""
        delay = self.base_delay_seconds * 2**retry_number
        if self.jitter_seconds:
            delay += random.uniform(0, self.jitter_seconds)
        return delay


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ClassifiedError) and exc.retryable


class RetryEngine:
    """Executes zero-argument async operations under a RetryPolicy.

    Args:
        policy: Attempt ceiling and backoff parameters.
        component: Metrics/log label (``llm``, ``email``).
        metrics: Optional aggregator receiving one event per attempt/retry.
        sleep: Coroutine used between attempts; injectable for tests.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        component: str,
        metrics: MetricsAggregator | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.policy = policy
        self.component = component
        self._metrics = metrics
        self._sleep = sleep

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.policy.delay_for(retry_state.attempt_number)

    def _before_sleep(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0
        if self._metrics is not None:
            self._metrics.record_retry(self.component)
        logger.warning(
            "retry_scheduled",
            component=self.component,
            attempt=retry_state.attempt_number,
            max_attempts=self.policy.max_attempts,
            delay_ms=round(delay * 1000),
            kind=getattr(getattr(error, "kind", None), "value", None),
            error=str(error),
        )

    async def _attempt(self, operation: Callable[[], Awaitable[T]]) -> T:
        start = time.perf_counter()
        try:
            result = await operation()
        except Exception as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            if self._metrics is not None:
                self._metrics.record_attempt(self.component, latency_ms, ok=False)
            classified = classify(exc)
            if classified is exc:
                raise
            raise classified from exc
        latency_ms = (time.perf_counter() - start) * 1000
        if self._metrics is not None:
            self._metrics.record_attempt(self.component, latency_ms, ok=True)
        return result

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation() until it succeeds or a terminal failure occurs.

        Raises:
            ClassifiedError: the last classified failure, once it is
                non-retryable or the attempt budget is exhausted.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts + 1),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(operation)
        except ClassifiedError as exc:
            logger.error(
                "retry_terminal_failure",
                component=self.component,
                kind=exc.kind.value,
                retryable=exc.retryable,
                attempts=retrying.statistics.get("attempt_number"),
                error=exc.original_message,
            )
            raise
        raise AssertionError("unreachable: tenacity exited without outcome")


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    component: str = "external",
    metrics: MetricsAggregator | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """One-shot helper around RetryEngine."""
    engine = RetryEngine(policy, component, metrics=metrics, sleep=sleep)
    return await engine.execute(operation)
