"""Structured logging setup and the per-request access log.

configure_structlog() routes structlog through stdlib logging at LOG_LEVEL,
rendering JSON in production and coloured console output elsewhere.

LoggingMiddleware emits one ``request_completed`` event per request. The
request id comes from an incoming X-Request-ID header when it looks sane,
otherwise a UUID4 is minted; it is echoed on the response and bound into
structlog contextvars so adapter events for the same request carry it.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.summarizer.config import Environment, Settings, get_settings

logger = structlog.get_logger(__name__)

MAX_REQUEST_ID_CHARS = 128


def _renderer(settings: Settings):
    if settings.ENVIRONMENT == Environment.production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_structlog(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(settings),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def request_id_for(request: Request) -> str:
    incoming = request.headers.get("X-Request-ID", "").strip()
    if 0 < len(incoming) <= MAX_REQUEST_ID_CHARS and incoming.isprintable():
        return incoming
    return str(uuid.uuid4())


def _level_for(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "info"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with timing and request correlation."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request_id_for(request)
        structlog.contextvars.bind_contextvars(request_id=request_id)
        started = time.monotonic()

        def _elapsed_ms() -> float:
            return round((time.monotonic() - started) * 1000, 2)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=_elapsed_ms(),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        getattr(logger, _level_for(response.status_code))(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(),
            request_id=request_id,
        )
        return response
