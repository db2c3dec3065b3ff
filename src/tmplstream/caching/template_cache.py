from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable, Optional

import numpy as np

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(slots=True)
class CachedTemplate:
    """
    Preprocessed template buffer owned by the cache.
    """

    data: np.ndarray
    width: int
    height: int
    last_access: float = 0.0


class TemplateCache:
    """
    LRU store of preprocessed templates bounded by capacity and TTL.

    Entries older than ``ttl`` seconds since their last touch are never
    returned; ``set`` drops every expired entry before evicting the least
    recently touched one to make room.
    """

    def __init__(self, capacity: int = 50, ttl: float = 300.0, clock: Clock = time.monotonic) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CachedTemplate]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not self._expired(entry, self._clock())

    def get(self, key: Hashable) -> Optional[CachedTemplate]:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._expired(entry, now):
            del self._entries[key]
            self.evictions += 1
            self.misses += 1
            return None
        entry.last_access = now
        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def set(self, key: Hashable, entry: CachedTemplate) -> None:
        now = self._clock()
        self.purge_expired(now)
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.capacity:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            logger.debug("Evicted template cache entry %s", evicted_key)
        entry.last_access = now
        self._entries[key] = entry

    def purge_expired(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self.evictions += len(expired)
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": (self.hits / lookups) if lookups else 0.0,
        }

    def _expired(self, entry: CachedTemplate, now: float) -> bool:
        return now - entry.last_access > self.ttl


__all__ = ["CachedTemplate", "TemplateCache"]
