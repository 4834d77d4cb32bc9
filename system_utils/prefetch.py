"""
Album art prefetch coordinator for system_utils package.

Single-flight resolution: however many callers ask for the same cache key at
once, at most one fetch runs for it. Every caller gets the same result.
The fetch runs as its own task, so a cancelled caller never cancels the fetch
that other callers (or the memory cache) are waiting on.

Dependencies: helpers, image, memory_cache
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from .helpers import create_tracked_task
from .image import ArtworkImage
from .memory_cache import MemoryArtCache
from logging_config import get_logger

logger = get_logger(__name__)

FetchFn = Callable[[], Awaitable[Optional[ArtworkImage]]]


@dataclass
class InFlightFetch:
    """A running fetch for one cache key."""
    key: str
    task: "asyncio.Task[Optional[ArtworkImage]]"
    waiters: int = 0

    def cancel(self) -> None:
        self.task.cancel()


class AlbumArtPrefetcher:
    def __init__(self, memory_cache: MemoryArtCache):
        self.memory_cache = memory_cache
        self._in_flight: Dict[str, InFlightFetch] = {}
        self.fetch_count = 0

    def is_fetching(self, key: str) -> bool:
        return key in self._in_flight

    async def resolve(self, key: str, fetch_fn: FetchFn) -> Optional[ArtworkImage]:
        """
        Return artwork for key from memory, an in-flight fetch, or a new fetch.

        Failures of fetch_fn resolve to None for every waiter.
        """
        cached = self.memory_cache.get(key)
        if cached is not None:
            logger.debug(f"Memory cache hit: {key!r}")
            return cached

        record = self._in_flight.get(key)
        if record is None:
            record = self._start(key, fetch_fn)
        else:
            logger.debug(f"Joining in-flight fetch: {key!r}")

        record.waiters += 1
        try:
            return await asyncio.shield(record.task)
        except asyncio.CancelledError:
            # Only this waiter is cancelled unless the fetch itself was
            if record.task.cancelled():
                return None
            raise
        finally:
            record.waiters -= 1

    def prefetch(self, key: str, fetch_fn: FetchFn) -> None:
        """Warm the memory cache in the background. No-op if cached or already fetching."""
        if key in self.memory_cache or key in self._in_flight:
            return
        logger.debug(f"Prefetching album art: {key!r}")
        self._start(key, fetch_fn)

    def cancel_all(self) -> None:
        for record in list(self._in_flight.values()):
            record.cancel()

    def _start(self, key: str, fetch_fn: FetchFn) -> InFlightFetch:
        self.fetch_count += 1
        task = create_tracked_task(self._run_fetch(key, fetch_fn))
        record = InFlightFetch(key=key, task=task)
        self._in_flight[key] = record
        # Runs even if the task is cancelled before its first step
        task.add_done_callback(lambda t: self._forget(key, t))
        return record

    def _forget(self, key: str, task: asyncio.Task) -> None:
        record = self._in_flight.get(key)
        if record is not None and record.task is task:
            del self._in_flight[key]

    async def _run_fetch(self, key: str, fetch_fn: FetchFn) -> Optional[ArtworkImage]:
        try:
            result = await fetch_fn()
        except Exception as e:
            logger.warning(f"Album art fetch failed for {key!r}: {e}")
            return None

        if result is not None:
            self.memory_cache.put(key, result)
        return result
