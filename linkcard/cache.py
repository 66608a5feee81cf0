"""In-process response cache for assembled previews.

Design:
- Keys are absolute URL strings; a preview is stored under both its source and final URL.
- DisabledCache never stores anything; it is the default when caching is turned off.
- InMemoryCache wraps a cachetools TTLCache behind an RLock. Stale entries are evicted
  when the cache is read and by a periodic APScheduler sweep, so keys that are never
  queried again do not pin memory.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from cachetools import TTLCache

from linkcard.schemas import Preview

logger = logging.getLogger(__name__)


class ResponseCache:
    """Interface shared by the cache variants."""

    def get(self, key: str) -> Optional[Preview]:
        raise NotImplementedError

    def set(self, key: str, value: Preview) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release background resources (no-op by default)."""


class DisabledCache(ResponseCache):
    """Cache that remembers nothing."""

    def get(self, key: str) -> Optional[Preview]:
        return None

    def set(self, key: str, value: Preview) -> None:
        return None


DISABLED_CACHE = DisabledCache()


class InMemoryCache(ResponseCache):
    """
    Time-based cache.

    An entry inserted at t0 is served strictly before t0 + invalidation_timeout and
    is gone at or after it. `maxsize` bounds memory; the least recently used entry is
    dropped when it is exceeded.
    """

    def __init__(
        self,
        invalidation_timeout: float = 300.0,
        cleanup_interval: float = 60.0,
        maxsize: int = 1000,
        timer: Callable[[], float] = time.monotonic,
        scheduler: Optional[BackgroundScheduler] = None,
        start_sweeper: bool = True,
    ) -> None:
        if invalidation_timeout <= 0 or cleanup_interval <= 0:
            raise ValueError("invalidation_timeout and cleanup_interval must be positive")
        self.invalidation_timeout = invalidation_timeout
        self.cleanup_interval = cleanup_interval
        self._store: TTLCache = TTLCache(
            maxsize=maxsize, ttl=invalidation_timeout, timer=timer
        )
        self._lock = threading.RLock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._owns_scheduler = False
        self._job = None
        if start_sweeper:
            self._start_sweeper(scheduler)

    def _start_sweeper(self, scheduler: Optional[BackgroundScheduler]) -> None:
        if scheduler is None:
            scheduler = BackgroundScheduler(daemon=True)
            self._owns_scheduler = True
        self._scheduler = scheduler
        self._job = scheduler.add_job(
            self.sweep,
            "interval",
            seconds=self.cleanup_interval,
            coalesce=True,
            max_instances=1,
        )
        if not scheduler.running:
            scheduler.start()
        logger.debug(
            f"Cache sweep scheduled every {self.cleanup_interval}s "
            f"(ttl={self.invalidation_timeout}s)"
        )

    def get(self, key: str) -> Optional[Preview]:
        with self._lock:
            self._store.expire()
            return self._store.get(key)

    def set(self, key: str, value: Preview) -> None:
        with self._lock:
            self._store[key] = value

    def sweep(self) -> int:
        """Remove every stale entry; returns how many were dropped."""
        with self._lock:
            removed = len(self._store.expire())
        if removed:
            logger.debug(f"Cache sweep removed {removed} stale entries")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        # Counts stale entries that have not been swept yet.
        with self._lock:
            return len(self._store)

    def close(self) -> None:
        if self._scheduler is None:
            return
        if self._owns_scheduler:
            self._scheduler.shutdown(wait=False)
        elif self._job is not None:
            self._job.remove()
        self._scheduler = None
        self._job = None


def build_cache(settings) -> ResponseCache:
    """Build the cache variant selected by configuration."""
    if not settings.cache_enabled:
        return DISABLED_CACHE
    return InMemoryCache(
        invalidation_timeout=settings.cache_invalidation_timeout,
        cleanup_interval=settings.cache_cleanup_interval,
        maxsize=settings.cache_max_entries,
    )


__all__ = [
    "ResponseCache",
    "DisabledCache",
    "DISABLED_CACHE",
    "InMemoryCache",
    "build_cache",
]
