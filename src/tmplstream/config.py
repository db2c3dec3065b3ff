from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Tuple

import cv2

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.8
DEFAULT_DOWNSAMPLE = 0.33
DEFAULT_SCALES: Tuple[float, ...] = (1.0,)


class MatchMethod(str, Enum):
    """
    Normalized correlation variants accepted by the matcher.
    """

    CCOEFF_NORMED = "TM_CCOEFF_NORMED"
    SQDIFF_NORMED = "TM_SQDIFF_NORMED"
    CCORR_NORMED = "TM_CCORR_NORMED"

    @property
    def cv2_flag(self) -> int:
        return {
            MatchMethod.CCOEFF_NORMED: cv2.TM_CCOEFF_NORMED,
            MatchMethod.SQDIFF_NORMED: cv2.TM_SQDIFF_NORMED,
            MatchMethod.CCORR_NORMED: cv2.TM_CCORR_NORMED,
        }[self]


@dataclass(frozen=True, slots=True)
class ROIRegion:
    """
    Rectangle in original frame coordinates that restricts a search.

    When ``template`` is set the region only applies to that template name.
    """

    x: int
    y: int
    w: int
    h: int
    name: str | None = None
    template: str | None = None

    def __post_init__(self) -> None:
        if self.w < 0 or self.h < 0:
            raise ValueError("ROI width and height must be >= 0")

    def applies_to(self, template_name: str | None) -> bool:
        return self.template is None or self.template == template_name

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ROIRegion":
        return cls(
            x=int(data["x"]),
            y=int(data["y"]),
            w=int(data["w"]),
            h=int(data["h"]),
            name=data.get("name"),
            template=data.get("template"),
        )


@dataclass(frozen=True, slots=True)
class MatchConfig:
    """
    Parameters for one match or batch match request.

    threshold: minimum score in [0, 1] counted as a match.
    scales: ordered multipliers applied to the template during the sweep.
    downsample: factor in (0, 1] applied to frame and template before matching.
    grayscale: convert both inputs to a single channel.
    roi_regions: regions searched before falling back to the full frame.
    method: correlation variant; higher scores are always better.
    adaptive_scaling: with a single scale, return as soon as it clears the threshold.
    early_termination: stop scale and region loops on a high-confidence hit.
    early_exit: batch only, stop after the first template that matches.
    cache_enabled: reuse preprocessed templates across requests.
    """

    threshold: float = DEFAULT_THRESHOLD
    scales: Tuple[float, ...] = DEFAULT_SCALES
    downsample: float = DEFAULT_DOWNSAMPLE
    grayscale: bool = True
    roi_regions: Tuple[ROIRegion, ...] = ()
    method: MatchMethod = MatchMethod.CCOEFF_NORMED
    adaptive_scaling: bool = True
    early_termination: bool = True
    early_exit: bool = False
    cache_enabled: bool = True

    def __post_init__(self) -> None:
        if not (0.0 <= self.threshold <= 1.0):
            raise ValueError("threshold must be between 0 and 1")
        if not (0.0 < self.downsample <= 1.0):
            raise ValueError("downsample must be in (0, 1]")
        scales = tuple(float(scale) for scale in self.scales)
        if not scales:
            raise ValueError("scales must contain at least one multiplier")
        if any(scale <= 0 for scale in scales):
            raise ValueError("scales must be positive")
        object.__setattr__(self, "scales", scales)
        object.__setattr__(self, "roi_regions", tuple(self.roi_regions))
        object.__setattr__(self, "method", MatchMethod(self.method))

    def regions_for(self, template_name: str | None) -> Tuple[ROIRegion, ...]:
        return tuple(region for region in self.roi_regions if region.applies_to(template_name))

    def to_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "scales": list(self.scales),
            "downsample": self.downsample,
            "grayscale": self.grayscale,
            "roi_regions": [region.to_dict() for region in self.roi_regions],
            "method": self.method.value,
            "adaptive_scaling": self.adaptive_scaling,
            "early_termination": self.early_termination,
            "early_exit": self.early_exit,
            "cache_enabled": self.cache_enabled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MatchConfig":
        _reject_unknown(cls, data)
        values = dict(data)
        if "roi_regions" in values:
            values["roi_regions"] = tuple(
                region if isinstance(region, ROIRegion) else ROIRegion.from_dict(region)
                for region in values["roi_regions"]
            )
        if "scales" in values:
            values["scales"] = tuple(values["scales"])
        return cls(**values)


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Process-wide knobs, constructed once at startup and injected.

    Durations are in seconds. ``max_workers`` is accepted but only one
    worker context is started.
    """

    template_cache_size: int = 50
    template_cache_ttl: float = 300.0
    frame_cache_enabled: bool = True
    frame_cache_size: int = 10
    frame_cache_ttl: float = 0.1
    cache_clean_interval: float = 5.0
    batch_timeout: float = 30.0
    single_timeout: float | None = None
    max_workers: int = 2
    min_dimension: int = 8
    poll_interval: float = 0.05
    match: MatchConfig = field(default_factory=MatchConfig)

    def __post_init__(self) -> None:
        if self.template_cache_size < 1 or self.frame_cache_size < 1:
            raise ValueError("cache sizes must be >= 1")
        if self.template_cache_ttl <= 0 or self.frame_cache_ttl <= 0:
            raise ValueError("cache TTLs must be positive")
        if self.cache_clean_interval <= 0:
            raise ValueError("cache_clean_interval must be positive")
        if self.batch_timeout <= 0:
            raise ValueError("batch_timeout must be positive")
        if self.single_timeout is not None and self.single_timeout <= 0:
            raise ValueError("single_timeout must be positive when set")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.min_dimension < 1:
            raise ValueError("min_dimension must be >= 1")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        _reject_unknown(cls, data)
        values = dict(data)
        if "match" in values and not isinstance(values["match"], MatchConfig):
            values["match"] = MatchConfig.from_dict(values["match"])
        return cls(**values)


def load_settings(path: Path | str | None = None) -> Settings:
    """
    Read settings from a JSON file, falling back to defaults for missing keys.

    A missing path yields the defaults; malformed JSON or unknown keys raise.
    """
    if path is None:
        return Settings()
    settings_path = Path(path)
    if not settings_path.exists():
        logger.info("Settings file %s not found, using defaults", settings_path)
        return Settings()
    with settings_path.open(encoding="utf-8") as handle:
        try:
            raw = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid settings file {settings_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file {settings_path} must contain a JSON object")
    return Settings.from_dict(raw)


def _reject_unknown(cls: type, data: Mapping[str, Any]) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")


__all__ = [
    "DEFAULT_DOWNSAMPLE",
    "DEFAULT_SCALES",
    "DEFAULT_THRESHOLD",
    "MatchConfig",
    "MatchMethod",
    "ROIRegion",
    "Settings",
    "load_settings",
]
