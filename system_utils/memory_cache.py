"""
In-memory album art cache for system_utils package.

Bounded by entry count and by total estimated decoded size. When an insert
would exceed either bound, least-recently-used entries are evicted first.
get/put never block and are only called from the event loop thread.

Dependencies: state, image
"""
from __future__ import annotations
from collections import OrderedDict
from typing import Optional

from . import state
from .image import ArtworkImage
from logging_config import get_logger

logger = get_logger(__name__)


class MemoryArtCache:
    def __init__(self, count_limit: int = state.MEMORY_COUNT_LIMIT,
                 cost_limit: int = state.MEMORY_COST_LIMIT):
        if count_limit <= 0 or cost_limit <= 0:
            raise ValueError("count_limit and cost_limit must be positive")
        self.count_limit = count_limit
        self.cost_limit = cost_limit
        # Oldest access first, most recent at the end
        self._entries: "OrderedDict[str, ArtworkImage]" = OrderedDict()
        self._total_cost = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    @property
    def total_cost(self) -> int:
        return self._total_cost

    def get(self, key: str) -> Optional[ArtworkImage]:
        """Return the cached artwork and mark it most recently used."""
        image = self._entries.get(key)
        if image is not None:
            self._entries.move_to_end(key)
        return image

    def put(self, key: str, image: ArtworkImage) -> bool:
        """
        Insert or replace an entry, evicting LRU entries to stay within limits.

        Returns False if the image alone is larger than the cost limit; such
        an image is never cached.
        """
        cost = image.cost
        if cost > self.cost_limit:
            logger.debug(f"Not caching {key!r}: cost {cost} exceeds limit {self.cost_limit}")
            return False

        old = self._entries.pop(key, None)
        if old is not None:
            self._total_cost -= old.cost

        while self._entries and (len(self._entries) + 1 > self.count_limit or
                                 self._total_cost + cost > self.cost_limit):
            evicted_key, evicted = self._entries.popitem(last=False)
            self._total_cost -= evicted.cost
            logger.debug(f"Evicted album art from memory: {evicted_key!r}")

        self._entries[key] = image
        self._total_cost += cost
        return True

    def remove(self, key: str) -> None:
        old = self._entries.pop(key, None)
        if old is not None:
            self._total_cost -= old.cost

    def clear(self) -> None:
        self._entries.clear()
        self._total_cost = 0
