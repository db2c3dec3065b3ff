from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from typing import Callable, Protocol, Sequence

import cv2
import numpy as np

from .caching import FrameCache, frame_hash
from .channel import ComputationChannel, resolved
from .config import MatchConfig, Settings
from .geometry import CoordinateMapper, DisplayGeometry, Rect
from .matching import BatchMatchResult, MatchResult
from .preprocess import is_empty
from .stats import MatchStats
from .types import Frame, Template

logger = logging.getLogger(__name__)


class CaptureSource(Protocol):
    def get_frame(self) -> np.ndarray | None:
        """Current pixels, or None when no valid source is available."""


class DisplaySource(Protocol):
    def display_geometry(self) -> DisplayGeometry | None:
        """Capture resolution and the rectangle the video occupies on screen."""


class VisionSystem:
    """
    Orchestrator-side entry point: captures frames, deduplicates static
    ones, maps coordinates and forwards match requests to the worker.

    Runs cooperatively on the caller's thread; call ``tick`` periodically to
    expire cached frames.
    """

    def __init__(
        self,
        capture: CaptureSource,
        display: DisplaySource | None = None,
        channel: ComputationChannel | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.capture = capture
        self.display = display
        self._owns_channel = channel is None
        self.channel = channel if channel is not None else ComputationChannel(self.settings)
        self.frame_cache = FrameCache(
            capacity=self.settings.frame_cache_size,
            ttl=self.settings.frame_cache_ttl,
            clock=clock,
        )
        self.stats = MatchStats()
        self._clock = clock
        self._last_cleanup = clock()

    def __enter__(self) -> "VisionSystem":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def get_frame(self) -> Frame | None:
        """
        Capture the current frame; None means there is no usable source.

        A frame identical to the previous capture (same hash) and still
        inside the expiry window is returned from the cache as the very same
        ``Frame`` object.
        """
        try:
            raw = self.capture.get_frame()
        except (OSError, RuntimeError, cv2.error):
            logger.exception("Capture source failed")
            return None
        if raw is None or is_empty(raw):
            return None

        digest = frame_hash(raw)
        if self.settings.frame_cache_enabled:
            cached = self.frame_cache.recall(digest)
            if cached is not None:
                self.stats.record_frame(cache_hit=True)
                return cached

        frame = self._materialize(raw, digest)
        if self.settings.frame_cache_enabled:
            self.frame_cache.store(frame)
        self.stats.record_frame(cache_hit=False)
        return frame

    def mapper(self) -> CoordinateMapper | None:
        """
        Fresh mapper for the current display geometry.
        """
        if self.display is None:
            return None
        geometry = self.display.display_geometry()
        if geometry is None:
            return None
        try:
            return CoordinateMapper.from_geometry(geometry)
        except ValueError as exc:
            logger.debug("Display geometry unusable: %s", exc)
            return None

    def capture_template(self, display_rect: Rect, name: str = "capture") -> Template | None:
        """
        Crop the region under a display-space rectangle out of the current frame.
        """
        mapper = self.mapper()
        if mapper is None:
            return None
        frame = self.get_frame()
        if frame is None:
            return None

        region = mapper.to_capture(display_rect)
        x0 = max(0, int(region.x))
        y0 = max(0, int(region.y))
        x1 = min(frame.width, int(region.x + region.w))
        y1 = min(frame.height, int(region.y + region.h))
        if x1 <= x0 or y1 <= y0:
            logger.warning("Capture rectangle %s maps outside the frame", display_rect)
            return None

        crop = frame.data[y0:y1, x0:x1].copy()
        logger.debug("Captured template '%s': %dx%d at (%d,%d)", name, x1 - x0, y1 - y0, x0, y0)
        return Template(name=name, data=crop)

    def match(
        self,
        frame: Frame | np.ndarray | None,
        template: Template | np.ndarray,
        config: MatchConfig | None = None,
    ) -> "Future[MatchResult | None]":
        """
        Resolves to None without contacting the worker when there is no frame.
        """
        if frame is None:
            logger.debug("No frame to match against")
            return resolved(None)
        image = frame.data if isinstance(frame, Frame) else frame
        data = template.data if isinstance(template, Template) else template
        future = self.channel.match(image, data, config or self.settings.match)
        future.add_done_callback(self._record_match)
        return future

    def batch_match(
        self,
        frame: Frame | np.ndarray | None,
        templates: Sequence[Template],
        config: MatchConfig | None = None,
    ) -> "Future[BatchMatchResult | None]":
        if frame is None:
            logger.debug("No frame to batch match against")
            return resolved(None)
        image = frame.data if isinstance(frame, Frame) else frame
        return self.channel.batch_match(image, templates, config or self.settings.match)

    def worker_stats(self) -> "Future[dict]":
        return self.channel.stats()

    def clear_worker_cache(self) -> "Future[dict]":
        return self.channel.clear_cache()

    def reset_stats(self) -> "Future[dict]":
        self.stats.reset()
        self.frame_cache.clear()
        return self.channel.clear_cache()

    def tick(self, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        if now - self._last_cleanup >= self.settings.cache_clean_interval:
            self.frame_cache.cleanup()
            self._last_cleanup = now

    def close(self) -> None:
        self.frame_cache.clear()
        if self._owns_channel:
            self.channel.close()
        logger.info("Vision system closed")

    def _materialize(self, raw: np.ndarray, digest: str) -> Frame:
        return Frame(
            data=raw,
            width=int(raw.shape[1]),
            height=int(raw.shape[0]),
            timestamp=time.time(),
            hash=digest,
        )

    def _record_match(self, future: "Future[MatchResult | None]") -> None:
        if future.exception() is None and future.result() is not None:
            self.stats.record_match(future.result())


__all__ = ["CaptureSource", "DisplaySource", "VisionSystem"]
