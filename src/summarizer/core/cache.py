"""In-memory response cache with per-entry TTL.

Entries are stored only for successful computations unless the caller opts
in to caching failures, in which case the stored exception is re-raised on
every hit until the entry expires. Expiry is checked on read; an expired
entry is never returned.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

if TYPE_CHECKING:
    from src.summarizer.observability.metrics import MetricsAggregator

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl_seconds: float
    error: Exception | None = None

    def expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl_seconds


class ResponseCache:
    """Key -> value memoization with hit/miss accounting."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        metrics: MetricsAggregator | None = None,
    ) -> None:
        self._clock = clock
        self._metrics = metrics
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._entries[key]
            return None
        return entry

    def _mark(self, hit: bool, key: str) -> None:
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        if self._metrics is not None:
            self._metrics.record_cache(hit)
        logger.debug("cache_hit" if hit else "cache_miss", key=key)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[T]],
        ttl_seconds: float,
        cache_failures: bool = False,
    ) -> T:
        """Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Request identity.
            compute: Zero-argument coroutine producing the value.
            ttl_seconds: Lifetime of a freshly stored entry.
            cache_failures: Also store exceptions raised by compute().
        """
        entry = self._lookup(key)
        if entry is not None:
            self._mark(True, key)
            if entry.error is not None:
                raise entry.error.with_traceback(None)
            return entry.value

        self._mark(False, key)
        try:
            value = await compute()
        except Exception as exc:
            if cache_failures:
                self._entries[key] = CacheEntry(
                    value=None, stored_at=self._clock(), ttl_seconds=ttl_seconds, error=exc
                )
                logger.debug("cache_stored_failure", key=key, ttl_seconds=ttl_seconds)
            raise

        self._entries[key] = CacheEntry(
            value=value, stored_at=self._clock(), ttl_seconds=ttl_seconds
        )
        return value

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        removed = self._entries.pop(key, None) is not None
        logger.debug("cache_invalidated", key=key, removed=removed)
        return removed

    def clear(self) -> int:
        """Drop every entry. Returns the number removed."""
        count = len(self._entries)
        self._entries.clear()
        logger.info("cache_cleared", removed=count)
        return count

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        live = [key for key, entry in self._entries.items() if not entry.expired(now)]
        return {
            "size": len(live),
            "hits": self._hits,
            "misses": self._misses,
            "keys": live,
        }
