"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
exception handlers for classified failures, and the v1 API router. All
process-scoped components live on app.state.
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, Response

from src.summarizer.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.summarizer.api.v1.router import router as v1_router
from src.summarizer.config import Settings, get_settings
from src.summarizer.core.cache import ResponseCache
from src.summarizer.core.errors import ClassifiedError, ErrorKind, ServiceUnavailableError
from src.summarizer.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.summarizer.core.rate_limit import FixedWindowRateLimiter
from src.summarizer.observability.metrics import MetricsAggregator
from src.summarizer.services.mail import EmailService
from src.summarizer.services.llm import SummaryService

logger = structlog.get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.VALIDATION_FAULT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NETWORK: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.SERVER_FAULT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

PUBLIC_MESSAGES = {
    ErrorKind.TIMEOUT: "The upstream service did not respond in time. Please try again.",
    ErrorKind.RATE_LIMITED: "The upstream service is busy. Please try again shortly.",
    ErrorKind.VALIDATION_FAULT: "The request was rejected by the upstream service.",
    ErrorKind.NETWORK: "Could not reach the upstream service. Please try again.",
    ErrorKind.SERVER_FAULT: "The upstream service is temporarily unavailable.",
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def public_message(exc: ClassifiedError) -> str:
    """Client-facing text for a classified failure.

    Locally raised validation faults (no upstream status) describe the
    caller's own input and are returned as-is; everything else is replaced
    by a generic message for its kind.
    """
    if exc.kind is ErrorKind.VALIDATION_FAULT and exc.status_code is None:
        return exc.original_message
    return PUBLIC_MESSAGES[exc.kind]


async def classified_error_handler(request: Request, exc: ClassifiedError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    logger.warning(
        "request_failed",
        path=request.url.path,
        kind=exc.kind.value,
        status_code=status_code,
        error=exc.original_message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": public_message(exc), "kind": exc.kind.value, "timestamp": _timestamp()},
    )


async def service_unavailable_handler(
    request: Request, exc: ServiceUnavailableError
) -> JSONResponse:
    logger.warning("service_unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": str(exc), "kind": "not_configured", "timestamp": _timestamp()},
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "kind": ErrorKind.VALIDATION_FAULT.value,
            "details": jsonable_encoder(exc.errors()),
            "timestamp": _timestamp(),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: logging and Sentry on startup, SMTP probe."""
    settings: Settings = app.state.settings
    configure_structlog(settings)

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    summary_service: SummaryService = app.state.summary_service
    email_service: EmailService = app.state.email_service
    if not summary_service.configured:
        logger.warning("llm_not_configured", hint="set GROQ_API_KEY")
    if email_service.configured:
        await email_service.verify_connection()
    else:
        logger.warning("email_not_configured", hint="set EMAIL_HOST, EMAIL_USER, EMAIL_PASS")

    logger.info("application_started", environment=settings.ENVIRONMENT.value)
    yield
    logger.info("application_stopped")


def create_app(
    settings: Settings | None = None,
    *,
    metrics: MetricsAggregator | None = None,
    summary_service: SummaryService | None = None,
    email_service: EmailService | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to get_settings().
        metrics: Shared aggregator; created when omitted.
        summary_service: LLM adapter; built from settings when omitted.
        email_service: SMTP adapter; built from settings when omitted.
        clock: Monotonic time source for rate windows and cache expiry.
    """
    settings = settings or get_settings()
    metrics = metrics or MetricsAggregator(settings.METRICS_LATENCY_WINDOW)

    app = FastAPI(
        title="Meeting Summarizer API",
        version="0.1.0",
        description="Meeting transcript summaries with email delivery",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.rate_limit_policies(), clock=clock, metrics=metrics
    )
    app.state.cache = ResponseCache(clock=clock, metrics=metrics)
    app.state.summary_service = summary_service or SummaryService(settings, metrics=metrics)
    app.state.email_service = email_service or EmailService(settings, metrics=metrics)

    app.add_exception_handler(ClassifiedError, classified_error_handler)
    app.add_exception_handler(ServiceUnavailableError, service_unavailable_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Cache", "Retry-After"],
    )

    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics_endpoint(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
