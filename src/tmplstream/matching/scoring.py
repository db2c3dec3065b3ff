from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from ..config import MatchMethod

NO_MATCH_SCORE = -1.0

Location = Tuple[int, int]
ScoreResult = Tuple[Location, float, np.ndarray]


@dataclass(slots=True)
class TemplateMatcher:
    """
    Thin wrapper around OpenCV's matchTemplate with "higher is better" scoring.
    """

    method: MatchMethod = MatchMethod.CCOEFF_NORMED

    def fits(self, image: np.ndarray, template: np.ndarray) -> bool:
        if image.size == 0 or template.size == 0:
            return False
        return template.shape[0] <= image.shape[0] and template.shape[1] <= image.shape[1]

    def match(self, image: np.ndarray, template: np.ndarray) -> ScoreResult:
        """
        Locate the best matching region.

        Returns ((x, y), score, heatmap). For squared-difference matching the
        score is ``1 - min`` so every method reports higher values as better.
        """
        if image.ndim != template.ndim:
            raise ValueError("image and template dimensionality must match")
        if image.dtype != template.dtype:
            image = image.astype(np.float32)
            template = template.astype(np.float32)

        result = cv2.matchTemplate(image, template, self.method.cv2_flag)
        min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(result)

        if self.method is MatchMethod.SQDIFF_NORMED:
            location = min_loc
            score = 1.0 - min_val
        else:
            location = max_loc
            score = max_val

        if not np.isfinite(score):
            score = NO_MATCH_SCORE
        return (int(location[0]), int(location[1])), float(score), result


__all__ = ["NO_MATCH_SCORE", "TemplateMatcher"]
