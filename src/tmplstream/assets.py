from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .channel import chain, resolved
from .config import MatchConfig, ROIRegion
from .io import decode_image, load_image
from .matching import BatchMatchResult, MatchResult
from .preprocess import is_empty
from .types import Frame, Template
from .vision import VisionSystem

logger = logging.getLogger(__name__)


class ScanStatus(str, Enum):
    NO_FRAME = "no_frame"
    NO_MATCH = "no_match"
    MATCHED = "matched"


@dataclass(frozen=True, slots=True)
class Detection:
    """
    A match that cleared its threshold, in capture pixels.
    """

    name: str
    score: float
    x: float
    y: float
    w: float
    h: float
    scale: float = 1.0

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)


@dataclass(frozen=True, slots=True)
class ScanOutcome:
    status: ScanStatus
    detection: Detection | None = None
    frame: Frame | None = None


class AssetLibrary:
    """
    Registry of named templates with threshold-aware lookups.
    """

    def __init__(self, vision: VisionSystem) -> None:
        self.vision = vision
        self._assets: Dict[str, Template] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._assets

    def __len__(self) -> int:
        return len(self._assets)

    @property
    def names(self) -> List[str]:
        return list(self._assets)

    def get(self, name: str) -> Optional[Template]:
        return self._assets.get(name)

    def register(self, name: str, image: np.ndarray, roi: ROIRegion | None = None) -> Template:
        if is_empty(image):
            raise ValueError(f"template '{name}' is empty")
        template = Template(name=name, data=image, roi=roi)
        if name in self._assets:
            logger.info("Replacing asset '%s'", name)
        self._assets[name] = template
        logger.debug("Registered asset '%s' (%dx%d)", name, template.width, template.height)
        return template

    def register_file(self, name: str, path: Path | str, roi: ROIRegion | None = None) -> Template:
        return self.register(name, load_image(path), roi=roi)

    def register_encoded(self, name: str, data: bytes | str, roi: ROIRegion | None = None) -> Template:
        return self.register(name, decode_image(data), roi=roi)

    def unregister(self, name: str) -> bool:
        return self._assets.pop(name, None) is not None

    def find(
        self,
        frame: Frame | np.ndarray | None,
        name: str,
        config: MatchConfig | None = None,
    ) -> "Future[Detection | None]":
        """
        Resolve to a detection when the named asset scores at or above the
        threshold, otherwise to None.
        """
        template = self._assets.get(name)
        if template is None:
            logger.warning("Asset not found: %s", name)
            return resolved(None)

        config = self._config_for(template, config or self.vision.settings.match)
        return chain(
            self.vision.match(frame, template, config),
            lambda result: _detection(name, result, config.threshold),
        )

    def find_batch(
        self,
        frame: Frame | np.ndarray | None,
        names: Sequence[str],
        config: MatchConfig | None = None,
    ) -> "Future[List[Detection | None]]":
        """
        One entry per requested name, None where the asset is unknown or
        did not match.
        """
        templates: List[Template] = []
        for name in names:
            template = self._assets.get(name)
            if template is None:
                logger.warning("Asset not found: %s", name)
            else:
                templates.append(template)
        if not templates:
            return resolved([None] * len(names))

        def collect(batch: BatchMatchResult | None) -> List[Detection | None]:
            if batch is None:
                return [None] * len(names)
            found: List[Detection | None] = []
            for name in names:
                item = batch.get(name)
                template = self._assets.get(name)
                if item is None or not item.matched or template is None:
                    found.append(None)
                    continue
                found.append(
                    Detection(
                        name=name,
                        score=item.score,
                        x=item.x,
                        y=item.y,
                        w=template.width * item.scale,
                        h=template.height * item.scale,
                        scale=item.scale,
                    )
                )
            return found

        return chain(self.vision.batch_match(frame, templates, config), collect)

    def scan(self, name: str, config: MatchConfig | None = None) -> "Future[ScanOutcome]":
        """
        Capture a frame and look for ``name`` in it.

        ``NO_FRAME`` means the capture source had nothing to offer, which is
        distinct from a processed frame without a match.
        """
        frame = self.vision.get_frame()
        if frame is None:
            return resolved(ScanOutcome(ScanStatus.NO_FRAME))

        def outcome(detection: Detection | None) -> ScanOutcome:
            status = ScanStatus.MATCHED if detection is not None else ScanStatus.NO_MATCH
            return ScanOutcome(status, detection, frame)

        return chain(self.find(frame, name, config), outcome)

    @staticmethod
    def _config_for(template: Template, config: MatchConfig) -> MatchConfig:
        # Single matches only honour unassociated regions, so detach them here.
        regions = (template.roi,) if template.roi is not None else config.regions_for(template.name)
        return replace(config, roi_regions=tuple(replace(region, template=None) for region in regions))


def _detection(name: str, result: MatchResult | None, threshold: float) -> Detection | None:
    if result is None or not result.matched(threshold):
        return None
    return Detection(
        name=name,
        score=result.score,
        x=result.x,
        y=result.y,
        w=result.template_width * result.scale,
        h=result.template_height * result.scale,
        scale=result.scale,
    )


__all__ = ["AssetLibrary", "Detection", "ScanOutcome", "ScanStatus"]
