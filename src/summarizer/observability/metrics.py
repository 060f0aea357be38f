"""Process-scoped metrics for the external-call adapters.

Per-component state is an immutable AdapterMetrics value. Every change goes
through a pure transition function (start_call, record_attempt, ...) that
returns a new value; MetricsAggregator only swaps the stored reference and
mirrors each event into the Prometheus collectors. Tests can therefore
exercise the transitions without instantiating any network client.

The aggregator is created once per application and passed explicitly to
the retry engine, the adapters, the rate limiter and the response cache.
"""

from __future__ import annotations

import math
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from src.summarizer.core import monitoring

DEFAULT_LATENCY_WINDOW = 100


@dataclass(frozen=True)
class AdapterMetrics:
    """Counters for one external dependency (``llm`` or ``email``).

    ``units_total`` counts tokens for the LLM adapter and message bytes for
    the email adapter. ``recent_latencies`` holds the last N call latencies
    (milliseconds) for percentile estimation.
    """

    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    attempt_count: int = 0
    retry_count: int = 0
    in_flight: int = 0
    total_latency_ms: float = 0.0
    average_latency_ms: float = 0.0
    units_total: int = 0
    recent_latencies: tuple[float, ...] = field(default_factory=tuple)
    last_success_at: datetime | None = None


# ── Pure transitions ─────────────────────────────────────────────────────────


def start_call(state: AdapterMetrics) -> AdapterMetrics:
    return replace(
        state,
        request_count=state.request_count + 1,
        in_flight=state.in_flight + 1,
    )


def record_attempt(state: AdapterMetrics) -> AdapterMetrics:
    return replace(state, attempt_count=state.attempt_count + 1)


def record_retry(state: AdapterMetrics) -> AdapterMetrics:
    return replace(state, retry_count=state.retry_count + 1)


def _push_latency(
    latencies: tuple[float, ...], latency_ms: float, window: int
) -> tuple[float, ...]:
    return (*latencies, latency_ms)[-window:]


def record_success(
    state: AdapterMetrics,
    latency_ms: float,
    units: int = 0,
    at: datetime | None = None,
    window: int = DEFAULT_LATENCY_WINDOW,
) -> AdapterMetrics:
    """Count a successful call and fold its latency into the running average.

    average = (average * (n - 1) + latest) / n, where n counts successes.
    """
    successes = state.success_count + 1
    average = (state.average_latency_ms * (successes - 1) + latency_ms) / successes
    return replace(
        state,
        success_count=successes,
        in_flight=max(state.in_flight - 1, 0),
        total_latency_ms=state.total_latency_ms + latency_ms,
        average_latency_ms=average,
        units_total=state.units_total + units,
        recent_latencies=_push_latency(state.recent_latencies, latency_ms, window),
        last_success_at=at or datetime.now(timezone.utc),
    )


def record_failure(
    state: AdapterMetrics,
    latency_ms: float,
    window: int = DEFAULT_LATENCY_WINDOW,
) -> AdapterMetrics:
    return replace(
        state,
        failure_count=state.failure_count + 1,
        in_flight=max(state.in_flight - 1, 0),
        total_latency_ms=state.total_latency_ms + latency_ms,
        recent_latencies=_push_latency(state.recent_latencies, latency_ms, window),
    )


def percentile(values: tuple[float, ...] | list[float], q: float) -> float | None:
    """Nearest-rank percentile (q in 0..100). None for an empty sample."""
    if not values:
        return None
    ordered = sorted(values)
    rank = max(math.ceil(q * len(ordered) / 100), 1)
    return ordered[rank - 1]


# ── Aggregator ───────────────────────────────────────────────────────────────


class MetricsAggregator:
    """Holds the current AdapterMetrics per component plus admission and
    cache counters. Read access goes through get() and snapshot()."""

    def __init__(self, latency_window: int = DEFAULT_LATENCY_WINDOW) -> None:
        self._window = latency_window
        self._components: dict[str, AdapterMetrics] = {}
        self._rate_limited: Counter[str] = Counter()
        self._cache_hits = 0
        self._cache_misses = 0
        self._started = time.monotonic()

    def get(self, component: str) -> AdapterMetrics:
        return self._components.get(component, AdapterMetrics())

    def _set(self, component: str, state: AdapterMetrics) -> None:
        self._components[component] = state

    def begin_call(self, component: str) -> None:
        self._set(component, start_call(self.get(component)))
        monitoring.external_calls_in_flight.labels(component=component).inc()

    def record_attempt(self, component: str, latency_ms: float, ok: bool) -> None:
        self._set(component, record_attempt(self.get(component)))
        monitoring.external_attempts_total.labels(
            component=component, status="success" if ok else "error"
        ).inc()
        monitoring.external_attempt_duration_seconds.labels(component=component).observe(
            latency_ms / 1000
        )

    def record_retry(self, component: str) -> None:
        self._set(component, record_retry(self.get(component)))
        monitoring.external_retries_total.labels(component=component).inc()

    def record_success(self, component: str, latency_ms: float, units: int = 0) -> None:
        self._set(
            component,
            record_success(self.get(component), latency_ms, units, window=self._window),
        )
        monitoring.external_calls_in_flight.labels(component=component).dec()
        monitoring.external_calls_total.labels(component=component, status="success").inc()
        monitoring.external_call_duration_seconds.labels(component=component).observe(
            latency_ms / 1000
        )
        if units:
            monitoring.external_units_total.labels(component=component).inc(units)

    def record_failure(self, component: str, latency_ms: float) -> None:
        self._set(
            component,
            record_failure(self.get(component), latency_ms, window=self._window),
        )
        monitoring.external_calls_in_flight.labels(component=component).dec()
        monitoring.external_calls_total.labels(component=component, status="error").inc()
        monitoring.external_call_duration_seconds.labels(component=component).observe(
            latency_ms / 1000
        )

    def record_rate_limited(self, route_id: str) -> None:
        self._rate_limited[route_id] += 1
        monitoring.rate_limit_rejections_total.labels(route=route_id).inc()

    def record_cache(self, hit: bool) -> None:
        if hit:
            self._cache_hits += 1
        else:
            self._cache_misses += 1
        monitoring.cache_events_total.labels(result="hit" if hit else "miss").inc()

    def rate_limited(self, route_id: str) -> int:
        return self._rate_limited[route_id]

    def snapshot(self) -> dict[str, Any]:
        """Read-only copy of every counter, with latency percentiles."""
        components: dict[str, Any] = {}
        for name, state in sorted(self._components.items()):
            latencies = state.recent_latencies
            components[name] = {
                "request_count": state.request_count,
                "success_count": state.success_count,
                "failure_count": state.failure_count,
                "attempt_count": state.attempt_count,
                "retry_count": state.retry_count,
                "in_flight": state.in_flight,
                "total_latency_ms": round(state.total_latency_ms, 2),
                "average_latency_ms": round(state.average_latency_ms, 2),
                "units_total": state.units_total,
                "latency_ms": {
                    "p50": percentile(latencies, 50),
                    "p95": percentile(latencies, 95),
                    "p99": percentile(latencies, 99),
                    "samples": len(latencies),
                },
                "last_success_at": (
                    state.last_success_at.isoformat() if state.last_success_at else None
                ),
            }
        return {
            "components": components,
            "rate_limited": dict(self._rate_limited),
            "cache": {"hits": self._cache_hits, "misses": self._cache_misses},
            "uptime_seconds": round(time.monotonic() - self._started, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
