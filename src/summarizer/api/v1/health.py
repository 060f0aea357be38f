"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). The liveness
payload is served from the response cache for HEALTH_CACHE_TTL seconds;
readiness always probes the SMTP relay.
"""

from __future__ import annotations

import platform
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from src.summarizer.api.deps import (
    get_app_settings,
    get_cache,
    get_email_service,
    get_summary_service,
)
from src.summarizer.config import Settings
from src.summarizer.core.cache import ResponseCache
from src.summarizer.services.mail import EmailService
from src.summarizer.services.llm import SummaryService

router = APIRouter(tags=["health"])

HEALTH_CACHE_KEY = "GET /api/v1/health"


def _configured(flag: bool) -> str:
    return "configured" if flag else "not configured"


@router.get("/health")
async def health_check(
    response: Response,
    settings: Settings = Depends(get_app_settings),
    cache: ResponseCache = Depends(get_cache),
    summary_service: SummaryService = Depends(get_summary_service),
    email_service: EmailService = Depends(get_email_service),
):
    """Basic liveness check with service configuration status."""
    computed = False

    async def _build() -> dict:
        nonlocal computed
        computed = True
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.ENVIRONMENT.value,
            "services": {
                "llm": _configured(summary_service.configured),
                "email": _configured(email_service.configured),
            },
            "runtime": {
                "python": platform.python_version(),
                "platform": platform.system().lower(),
            },
        }

    payload = await cache.get_or_compute(
        HEALTH_CACHE_KEY, _build, ttl_seconds=settings.HEALTH_CACHE_TTL
    )
    response.headers["X-Cache"] = "MISS" if computed else "HIT"
    return payload


@router.get("/health/ready")
async def readiness_check(
    summary_service: SummaryService = Depends(get_summary_service),
    email_service: EmailService = Depends(get_email_service),
):
    """Readiness: LLM key present and, when configured, SMTP reachable.

    Returns 200 if ready, 503 otherwise.
    """
    checks = {
        "llm": "ok" if summary_service.configured else "not_configured",
        "email": "not_configured",
    }
    if email_service.configured:
        checks["email"] = "ok" if await email_service.verify_connection() else "error"

    ready = checks["llm"] == "ok" and checks["email"] != "error"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
