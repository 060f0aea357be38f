"""FastAPI dependency injection for the process-scoped components.

Every component (settings, metrics, rate limiter, cache, adapters) is
created once in create_app() and stored on app.state; these dependencies
hand them to endpoints and apply per-route admission control.
"""

from __future__ import annotations

import math
import secrets
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, Response, status

from src.summarizer.config import Settings
from src.summarizer.core.cache import ResponseCache
from src.summarizer.core.rate_limit import Admission, FixedWindowRateLimiter
from src.summarizer.observability.metrics import MetricsAggregator
from src.summarizer.services.mail import EmailService
from src.summarizer.services.llm import SummaryService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics(request: Request) -> MetricsAggregator:
    return request.app.state.metrics


def get_cache(request: Request) -> ResponseCache:
    return request.app.state.cache


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def get_summary_service(request: Request) -> SummaryService:
    return request.app.state.summary_service


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service


def client_key(request: Request) -> str:
    """Identify the caller for rate limiting.

    Uses the first X-Forwarded-For hop only when TRUST_FORWARDED_FOR is set,
    since the header is client-controlled otherwise.
    """
    settings: Settings = request.app.state.settings
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is not None:
        return request.client.host
    return "unknown"


def rate_limit(route_id: str) -> Callable[[Request, Response], Awaitable[Admission]]:
    """Build a dependency that admits or rejects the request for route_id.

    Raises:
        HTTPException(429): With Retry-After when the client's window is full.
    """

    async def _admit(request: Request, response: Response) -> Admission:
        limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
        admission = limiter.admit(route_id, client_key(request))
        if not admission.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "Too many requests, please try again later.",
                    "route": route_id,
                    "retry_after_seconds": math.ceil(admission.retry_after_seconds),
                },
                headers={
                    "Retry-After": str(math.ceil(admission.retry_after_seconds)),
                    "X-RateLimit-Limit": str(admission.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )
        response.headers["X-RateLimit-Limit"] = str(admission.limit)
        response.headers["X-RateLimit-Remaining"] = str(admission.remaining)
        return admission

    return _admit


async def require_admin(request: Request) -> None:
    """Guard the admin surface with the X-Admin-Key header.

    Raises:
        HTTPException(403): If ADMIN_API_KEY is not configured.
        HTTPException(401): If the header is missing or wrong.
    """
    settings: Settings = request.app.state.settings
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API is disabled",
        )
    provided = request.headers.get("X-Admin-Key", "")
    if not secrets.compare_digest(provided, settings.ADMIN_API_KEY):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin key",
        )
