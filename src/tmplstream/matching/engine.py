from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from ..caching import CachedTemplate, TemplateCache, template_key
from ..config import MatchConfig, ROIRegion
from ..preprocess import (
    MIN_DIMENSION,
    clip_region,
    effective_factor,
    extract_roi,
    is_empty,
    prepare,
    rescale,
    scale_region,
)
from ..resources import ResourceScope
from ..types import Template
from .results import BatchItemResult, BatchMatchResult, MatchPerformance, MatchResult
from .scoring import NO_MATCH_SCORE, TemplateMatcher

logger = logging.getLogger(__name__)

# Score above which region and scale loops stop early.
EARLY_STOP_SCORE = 0.95


@dataclass(slots=True)
class _Candidate:
    """
    Best location found so far, in the coordinates of the searched image.
    """

    score: float = NO_MATCH_SCORE
    x: int = 0
    y: int = 0
    scale: float = 1.0

    def shifted(self, dx: int, dy: int) -> "_Candidate":
        return _Candidate(self.score, self.x + dx, self.y + dy, self.scale)


class MatchEngine:
    """
    Multiscale, early-terminating template search with ROI and batch modes.

    The engine owns its template cache; nothing else touches it. Invalid
    input (empty buffers, templates larger than the search area) never
    raises and is reported as a score of -1.
    """

    def __init__(self, cache: TemplateCache | None = None, min_dimension: int = MIN_DIMENSION) -> None:
        if min_dimension < 1:
            raise ValueError("min_dimension must be >= 1")
        self.cache = cache if cache is not None else TemplateCache()
        self.min_dimension = min_dimension
        self.match_count = 0
        self.total_time = 0.0

    @property
    def average_time(self) -> float:
        return self.total_time / self.match_count if self.match_count else 0.0

    def single_match(
        self,
        frame: np.ndarray,
        template: np.ndarray,
        config: MatchConfig | None = None,
    ) -> MatchResult:
        """
        Locate ``template`` in ``frame``; coordinates are in original frame pixels.
        """
        config = config or MatchConfig()
        start = time.perf_counter()
        result = MatchResult(
            template_width=int(template.shape[1]) if template.ndim >= 2 else 0,
            template_height=int(template.shape[0]) if template.ndim >= 2 else 0,
        )
        if is_empty(frame) or is_empty(template):
            logger.debug("Empty frame or template, reporting no match")
            return self._finish(result, start)

        with ResourceScope("match") as scope:
            factor = effective_factor(frame.shape, template.shape, config.downsample, self.min_dimension)
            image = scope.track(prepare(frame, factor, config.grayscale))
            prepared, cache_hit = self._prepared_template(template, factor, config, scope)
            best, used_roi, adaptive = self._locate(
                image, prepared, factor, config, config.regions_for(None), scope
            )

        result.score = best.score
        result.x = best.x / factor
        result.y = best.y / factor
        result.scale = best.scale
        result.used_roi = used_roi
        result.adaptive_scaling = adaptive
        result.cache_hit = cache_hit
        return self._finish(result, start)

    def batch_match(
        self,
        frame: np.ndarray,
        templates: Sequence[Template],
        config: MatchConfig | None = None,
    ) -> BatchMatchResult:
        """
        Match several templates against one frame.

        The frame is preprocessed once and held by the outer scope; each
        template's temporaries live in a child scope closed before the next
        template starts.
        """
        config = config or MatchConfig()
        start = time.perf_counter()
        results: List[BatchItemResult] = []

        with ResourceScope("batch") as frame_scope:
            prepared_frames: Dict[float, np.ndarray] = {}
            for template in templates:
                item_start = time.perf_counter()
                with frame_scope.child(f"batch/{template.name}") as item_scope:
                    best, used_roi, cache_hit, factor = self._match_item(
                        frame, template, config, prepared_frames, frame_scope, item_scope
                    )
                duration = self._record(item_start)
                matched = best.score >= config.threshold
                results.append(
                    BatchItemResult(
                        name=template.name,
                        score=best.score,
                        x=best.x / factor,
                        y=best.y / factor,
                        matched=matched,
                        duration=duration,
                        cache_hit=cache_hit,
                        used_roi=used_roi,
                        scale=best.scale,
                    )
                )
                if config.early_exit and matched:
                    logger.debug("Batch early exit after '%s' (score=%.3f)", template.name, best.score)
                    break

        total = (time.perf_counter() - start) * 1000.0
        return BatchMatchResult(
            results=results,
            total_duration=total,
            template_count=len(templates),
            matched_count=sum(1 for item in results if item.matched),
        )

    def stats(self) -> dict:
        return {
            "match_count": self.match_count,
            "total_time": self.total_time,
            "average_time": self.average_time,
            "cache": self.cache.stats(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def _match_item(
        self,
        frame: np.ndarray,
        template: Template,
        config: MatchConfig,
        prepared_frames: Dict[float, np.ndarray],
        frame_scope: ResourceScope,
        item_scope: ResourceScope,
    ) -> Tuple[_Candidate, bool, bool, float]:
        if is_empty(frame) or is_empty(template.data):
            return _Candidate(), False, False, 1.0

        factor = effective_factor(frame.shape, template.data.shape, config.downsample, self.min_dimension)
        image = prepared_frames.get(factor)
        if image is None:
            image = frame_scope.track(prepare(frame, factor, config.grayscale))
            prepared_frames[factor] = image

        prepared, cache_hit = self._prepared_template(
            template.data, factor, config, item_scope, name=template.name
        )
        regions = (template.roi,) if template.roi is not None else config.regions_for(template.name)
        best, used_roi, _ = self._locate(image, prepared, factor, config, regions, item_scope)
        return best, used_roi, cache_hit, factor

    def _prepared_template(
        self,
        template: np.ndarray,
        factor: float,
        config: MatchConfig,
        scope: ResourceScope,
        name: str | None = None,
    ) -> Tuple[np.ndarray, bool]:
        if not config.cache_enabled:
            return scope.track(prepare(template, factor, config.grayscale)), False

        key = template_key(template, factor, config.grayscale, name)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.data, True

        prepared = scope.track(prepare(template, factor, config.grayscale))
        # The cache outlives this scope, so it keeps its own copy.
        self.cache.set(
            key,
            CachedTemplate(
                data=prepared.copy(),
                width=int(prepared.shape[1]),
                height=int(prepared.shape[0]),
            ),
        )
        return prepared, False

    def _locate(
        self,
        image: np.ndarray,
        template: np.ndarray,
        factor: float,
        config: MatchConfig,
        regions: Sequence[ROIRegion],
        scope: ResourceScope,
    ) -> Tuple[_Candidate, bool, bool]:
        """
        Search the configured regions, falling back to the whole frame when
        none of them can hold the template. Returns (best, used_roi, adaptive).
        """
        if regions:
            best: _Candidate | None = None
            adaptive = False
            template_height, template_width = template.shape[:2]
            for region in regions:
                area = clip_region(scale_region(region, factor), image.shape[1], image.shape[0])
                if area is None or area.w < template_width or area.h < template_height:
                    logger.debug("Skipping ROI %s: outside frame or smaller than template", region)
                    continue
                candidate, adaptive = self._search(extract_roi(image, area), template, config, scope)
                candidate = candidate.shifted(area.x, area.y)
                if best is None or candidate.score > best.score:
                    best = candidate
                if config.early_termination and best.score >= EARLY_STOP_SCORE:
                    break
            if best is not None:
                return best, True, adaptive
            logger.debug("No usable ROI among %d regions, searching full frame", len(regions))

        candidate, adaptive = self._search(image, template, config, scope)
        return candidate, False, adaptive

    def _search(
        self,
        image: np.ndarray,
        template: np.ndarray,
        config: MatchConfig,
        scope: ResourceScope,
    ) -> Tuple[_Candidate, bool]:
        scales = config.scales
        tried: Dict[float, _Candidate] = {}

        adaptive = config.adaptive_scaling and len(scales) == 1
        if adaptive:
            first = self._score_at(image, template, scales[0], config, scope)
            if first.score >= config.threshold:
                return first, True
            tried[scales[0]] = first

        best = _Candidate()
        for scale in scales:
            candidate = tried[scale] if scale in tried else self._score_at(image, template, scale, config, scope)
            if candidate.score > best.score:
                best = candidate
            if (
                config.early_termination
                and best.score >= config.threshold
                and best.score > EARLY_STOP_SCORE
            ):
                break
        return best, adaptive

    def _score_at(
        self,
        image: np.ndarray,
        template: np.ndarray,
        scale: float,
        config: MatchConfig,
        scope: ResourceScope,
    ) -> _Candidate:
        matcher = TemplateMatcher(method=config.method)
        scaled = rescale(template, scale)
        if scaled is not template:
            scope.track(scaled)

        if not matcher.fits(image, scaled):
            logger.debug(
                "Template %sx%s at scale %.2f does not fit search area %sx%s",
                scaled.shape[1],
                scaled.shape[0],
                scale,
                image.shape[1],
                image.shape[0],
            )
            if scaled is not template:
                scope.release(scaled)
            return _Candidate(scale=scale)

        (x, y), score, heatmap = matcher.match(image, scaled)
        scope.track(heatmap)
        scope.release(heatmap)
        if scaled is not template:
            scope.release(scaled)
        return _Candidate(score=score, x=x, y=y, scale=scale)

    def _record(self, start: float) -> float:
        duration = (time.perf_counter() - start) * 1000.0
        self.match_count += 1
        self.total_time += duration
        return duration

    def _finish(self, result: MatchResult, start: float) -> MatchResult:
        duration = self._record(start)
        result.performance = MatchPerformance(
            duration=duration,
            match_count=self.match_count,
            average_time=self.average_time,
        )
        return result


__all__ = ["EARLY_STOP_SCORE", "MatchEngine"]
