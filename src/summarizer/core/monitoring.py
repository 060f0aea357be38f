"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Collectors fed by the MetricsAggregator (adapter calls, retries,
  rate-limit denials, cache events)
- init_sentry(): Initialize Sentry when a DSN is configured
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "HTTP requests served, by route template",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds, rate-limit and cache time included",
    ["method", "endpoint"],
    buckets=(0.005, 0.025, 0.1, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0, 60.0),
)

# ── External Call Metrics ────────────────────────────────────────────────────

external_calls_total = Counter(
    "external_calls_total",
    "Completed adapter calls (after retries)",
    ["component", "status"],
)

external_call_duration_seconds = Histogram(
    "external_call_duration_seconds",
    "Adapter call duration in seconds, retries included",
    ["component"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

external_attempts_total = Counter(
    "external_attempts_total",
    "Individual attempts against an external dependency",
    ["component", "status"],
)

external_attempt_duration_seconds = Histogram(
    "external_attempt_duration_seconds",
    "Single attempt duration in seconds",
    ["component"],
    buckets=(0.05, 0.25, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0),
)

external_retries_total = Counter(
    "external_retries_total",
    "Retries scheduled by the retry engine",
    ["component"],
)

external_units_total = Counter(
    "external_units_total",
    "Tokens (llm) or message bytes (email) processed",
    ["component"],
)

external_calls_in_flight = Gauge(
    "external_calls_in_flight",
    "Adapter calls currently in progress",
    ["component"],
)

# ── Admission / Cache Metrics ────────────────────────────────────────────────

rate_limit_rejections_total = Counter(
    "rate_limit_rejections_total",
    "Requests denied by the fixed-window rate limiter",
    ["route"],
)

cache_events_total = Counter(
    "cache_events_total",
    "Response cache lookups",
    ["result"],
)


# ── HTTP Middleware ──────────────────────────────────────────────────────────

UNTRACKED_PATHS = frozenset({"/metrics"})


def route_template(request: Request) -> str:
    """Matched route pattern (``/api/v1/admin/cache/{key:path}``), else the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Counts and times every HTTP request by method, route and status.

    Labels use the route template, not the concrete path, so cache keys and
    other path parameters do not create new series.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNTRACKED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        labels = {"method": request.method, "endpoint": route_template(request)}
        http_requests_total.labels(**labels, status_code=str(response.status_code)).inc()
        http_request_duration_seconds.labels(**labels).observe(elapsed)
        return response


# ── Sentry ───────────────────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str, traces_sample_rate: float | None = None) -> None:
    """Enable Sentry error reporting.

    Production samples 10% of traces unless traces_sample_rate is given;
    other environments sample everything.
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    if traces_sample_rate is None:
        traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )


# ── Exposition ───────────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
