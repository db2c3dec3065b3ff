from __future__ import annotations

import math
from dataclasses import dataclass

from .matching import MatchResult


@dataclass(slots=True)
class MatchStats:
    """
    Running counters for matches observed by the orchestrator.

    Durations are the worker-side match times in milliseconds.
    """

    match_count: int = 0
    total_time: float = 0.0
    best_time: float = math.inf
    worst_time: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    roi_matches: int = 0
    full_frame_matches: int = 0
    adaptive_attempts: int = 0
    frames_captured: int = 0
    frame_cache_hits: int = 0

    def record_match(self, result: MatchResult) -> None:
        duration = result.duration
        self.match_count += 1
        self.total_time += duration
        self.best_time = min(self.best_time, duration)
        self.worst_time = max(self.worst_time, duration)
        if result.cache_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1
        if result.used_roi:
            self.roi_matches += 1
        else:
            self.full_frame_matches += 1
        if result.adaptive_scaling:
            self.adaptive_attempts += 1

    def record_frame(self, cache_hit: bool) -> None:
        self.frames_captured += 1
        if cache_hit:
            self.frame_cache_hits += 1

    @property
    def average_time(self) -> float:
        return self.total_time / self.match_count if self.match_count else 0.0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def reset(self) -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, self.__dataclass_fields__[name].default)


__all__ = ["MatchStats"]
