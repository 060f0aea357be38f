"""Fixed-window rate limiting keyed by (route, client).

Each route has its own policy (window length and ceiling). A window starts
with the first request from a client and resets, rather than slides, once
the window length has elapsed. Denials happen before any adapter is called.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from src.summarizer.observability.metrics import MetricsAggregator

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TRACKED_KEYS = 10_000


@dataclass(frozen=True)
class RateLimitPolicy:
    window_seconds: float
    ceiling: int

    def __post_init__(self) -> None:
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if self.ceiling < 0:
            raise ValueError("ceiling must be >= 0")


@dataclass
class RateWindow:
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class Admission:
    """Outcome of an admission check."""

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: float = 0.0


class FixedWindowRateLimiter:
    """Per-route, per-client fixed-window counters.

    Args:
        policies: Route id -> RateLimitPolicy.
        clock: Monotonic time source in seconds; injectable for tests.
        metrics: Optional aggregator; denials are recorded as rate-limit events.
        max_tracked_keys: Expired windows are swept once this many are held.
    """

    def __init__(
        self,
        policies: dict[str, RateLimitPolicy],
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsAggregator | None = None,
        max_tracked_keys: int = DEFAULT_MAX_TRACKED_KEYS,
    ) -> None:
        self._policies = dict(policies)
        self._clock = clock
        self._metrics = metrics
        self._max_tracked_keys = max_tracked_keys
        self._windows: dict[tuple[str, str], RateWindow] = {}

    def policy(self, route_id: str) -> RateLimitPolicy:
        return self._policies[route_id]

    def admit(self, route_id: str, client_key: str) -> Admission:
        """Count one request against the client's current window.

        Raises:
            KeyError: If route_id has no configured policy.
        """
        policy = self._policies[route_id]
        now = self._clock()
        key = (route_id, client_key)

        window = self._windows.get(key)
        if window is None:
            if len(self._windows) >= self._max_tracked_keys:
                self._sweep(now)
            window = RateWindow(window_start=now)
            self._windows[key] = window
        elif now - window.window_start >= policy.window_seconds:
            window.window_start = now
            window.count = 0

        if window.count >= policy.ceiling:
            retry_after = policy.window_seconds - (now - window.window_start)
            if self._metrics is not None:
                self._metrics.record_rate_limited(route_id)
            logger.warning(
                "rate_limit_exceeded",
                route=route_id,
                client=client_key,
                limit=policy.ceiling,
                retry_after_ms=round(retry_after * 1000),
            )
            return Admission(
                allowed=False,
                limit=policy.ceiling,
                remaining=0,
                retry_after_seconds=retry_after,
            )

        window.count += 1
        return Admission(
            allowed=True,
            limit=policy.ceiling,
            remaining=policy.ceiling - window.count,
        )

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.window_start >= self._policies[key[0]].window_seconds
        ]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("rate_limit_windows_swept", removed=len(expired))

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)
