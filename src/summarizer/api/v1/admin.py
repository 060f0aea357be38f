"""Administrative endpoints: metrics snapshot and cache control.

Disabled unless ADMIN_API_KEY is configured; callers authenticate with the
X-Admin-Key header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.summarizer.api.deps import get_cache, get_metrics, get_rate_limiter, require_admin
from src.summarizer.core.cache import ResponseCache
from src.summarizer.core.rate_limit import FixedWindowRateLimiter
from src.summarizer.observability.metrics import MetricsAggregator

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/metrics")
async def metrics_snapshot(
    metrics: MetricsAggregator = Depends(get_metrics),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Read-only view of adapter, admission and cache counters."""
    snapshot = metrics.snapshot()
    snapshot["rate_limit_windows"] = len(limiter)
    return snapshot


@router.get("/cache/stats")
async def cache_stats(cache: ResponseCache = Depends(get_cache)):
    return cache.stats()


@router.post("/cache/clear")
async def cache_clear(cache: ResponseCache = Depends(get_cache)):
    return {"cleared": cache.clear()}


@router.delete("/cache/{key:path}")
async def cache_invalidate(key: str, cache: ResponseCache = Depends(get_cache)):
    return {"key": key, "invalidated": cache.invalidate(key)}
