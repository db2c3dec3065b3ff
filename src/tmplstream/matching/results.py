from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, List, Mapping

from .scoring import NO_MATCH_SCORE


@dataclass(slots=True)
class MatchPerformance:
    duration: float = 0.0
    match_count: int = 0
    average_time: float = 0.0


@dataclass(slots=True)
class MatchResult:
    """
    Best location of one template in one frame.

    ``x``/``y`` are the top-left corner in original frame pixels. ``scale``
    is the sweep multiplier that produced the score; durations are in
    milliseconds.
    """

    score: float = NO_MATCH_SCORE
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    used_roi: bool = False
    adaptive_scaling: bool = False
    cache_hit: bool = False
    template_width: int = 0
    template_height: int = 0
    performance: MatchPerformance = field(default_factory=MatchPerformance)

    @property
    def duration(self) -> float:
        return self.performance.duration

    def matched(self, threshold: float) -> bool:
        return self.score >= threshold

    def to_dict(self) -> dict:
        data = asdict(self)
        data["best_scale"] = data.pop("scale")
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchResult":
        return cls(
            score=float(data["score"]),
            x=float(data["x"]),
            y=float(data["y"]),
            scale=float(data.get("best_scale", 1.0)),
            used_roi=bool(data.get("used_roi", False)),
            adaptive_scaling=bool(data.get("adaptive_scaling", False)),
            cache_hit=bool(data.get("cache_hit", False)),
            template_width=int(data.get("template_width", 0)),
            template_height=int(data.get("template_height", 0)),
            performance=MatchPerformance(**data.get("performance", {})),
        )


@dataclass(slots=True)
class BatchItemResult:
    name: str
    score: float
    x: float
    y: float
    matched: bool
    duration: float
    cache_hit: bool = False
    used_roi: bool = False
    scale: float = 1.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BatchItemResult":
        return cls(**data)


@dataclass(slots=True)
class BatchMatchResult:
    results: List[BatchItemResult]
    total_duration: float
    template_count: int
    matched_count: int

    def get(self, name: str) -> BatchItemResult | None:
        for item in self.results:
            if item.name == name:
                return item
        return None

    def to_dict(self) -> dict:
        return {
            "results": [item.to_dict() for item in self.results],
            "total_duration": self.total_duration,
            "template_count": self.template_count,
            "matched_count": self.matched_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BatchMatchResult":
        return cls(
            results=[BatchItemResult.from_dict(item) for item in data["results"]],
            total_duration=float(data["total_duration"]),
            template_count=int(data["template_count"]),
            matched_count=int(data["matched_count"]),
        )


__all__ = ["BatchItemResult", "BatchMatchResult", "MatchPerformance", "MatchResult"]
