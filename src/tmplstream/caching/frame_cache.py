from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional

from ..types import Frame

logger = logging.getLogger(__name__)


class FrameCache:
    """
    Deduplicates visually static captures.

    A frame is recalled only when its hash equals the hash of the capture
    immediately before it and the stored copy is younger than ``ttl``.
    """

    def __init__(self, capacity: int = 10, ttl: float = 0.1, clock: Callable[[], float] = time.monotonic) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Frame, float]]" = OrderedDict()
        self._last_hash: str | None = None
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def last_hash(self) -> str | None:
        return self._last_hash

    def recall(self, digest: str) -> Optional[Frame]:
        now = self._clock()
        if digest == self._last_hash:
            cached = self._entries.get(digest)
            if cached is not None:
                frame, stored_at = cached
                if now - stored_at < self.ttl:
                    self.hits += 1
                    return frame
                del self._entries[digest]
        self.misses += 1
        return None

    def store(self, frame: Frame) -> None:
        now = self._clock()
        self._last_hash = frame.hash
        self._purge(now)
        self._entries.pop(frame.hash, None)
        while len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[frame.hash] = (frame, now)

    def cleanup(self) -> int:
        """
        Drop expired entries; called from the orchestrator's periodic tick.
        """
        removed = self._purge(self._clock())
        if removed:
            logger.debug("Frame cache cleanup removed %d entries", removed)
        return removed

    def clear(self) -> None:
        self._entries.clear()
        self._last_hash = None

    def _purge(self, now: float) -> int:
        expired = [digest for digest, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl]
        for digest in expired:
            del self._entries[digest]
        return len(expired)


__all__ = ["FrameCache"]
