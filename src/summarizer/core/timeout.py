"""Deadline guard for external calls.

The operation runs under an asyncio.timeout() scope. When the deadline
expires, the await is cancelled so the in-flight request releases its
socket, and a TIMEOUT classified error is raised in its place. Errors the
operation raises on its own, including its own TimeoutError subclasses,
propagate unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from src.summarizer.core.errors import ClassifiedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_seconds: float,
    label: str = "Operation",
) -> T:
    """Await operation() for at most timeout_seconds.

    Raises:
        ClassifiedError: kind TIMEOUT (retryable) if the deadline expires first.
    """
    deadline = asyncio.timeout(timeout_seconds)
    try:
        async with deadline:
            return await operation()
    except TimeoutError as exc:
        if not deadline.expired():
            raise
        timeout_ms = round(timeout_seconds * 1000)
        logger.warning("operation_timed_out", label=label, timeout_ms=timeout_ms)
        raise ClassifiedError.timeout(f"{label} timed out after {timeout_ms}ms") from exc
