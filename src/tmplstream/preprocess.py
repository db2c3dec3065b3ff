"""
Frame and template preprocessing: downsampling, channel normalization and
region-of-interest extraction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .config import ROIRegion

MIN_DIMENSION = 8


@dataclass(frozen=True, slots=True)
class PixelRegion:
    """
    Integer rectangle inside a concrete (possibly downsampled) image.
    """

    x: int
    y: int
    w: int
    h: int


def is_empty(image: np.ndarray | None) -> bool:
    return image is None or image.size == 0 or image.shape[0] == 0 or image.shape[1] == 0


def effective_factor(
    frame_shape: Tuple[int, ...],
    template_shape: Tuple[int, ...],
    factor: float,
    min_dimension: int = MIN_DIMENSION,
) -> float:
    """
    Return ``factor`` unless it would shrink any side of the frame or the
    template below ``min_dimension`` pixels, in which case return 1.0 so that
    both inputs keep the same scale.
    """
    if factor >= 1.0:
        return 1.0
    smallest = min(frame_shape[0], frame_shape[1], template_shape[0], template_shape[1])
    if int(round(smallest * factor)) < min_dimension:
        return 1.0
    return factor


def downsample(image: np.ndarray, factor: float) -> np.ndarray:
    if factor >= 1.0:
        return image
    height, width = image.shape[:2]
    new_width = max(1, int(round(width * factor)))
    new_height = max(1, int(round(height * factor)))
    return cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_AREA)


def rescale(image: np.ndarray, scale: float) -> np.ndarray:
    """
    Resize a template by a sweep multiplier.
    """
    if scale == 1.0:
        return image
    height, width = image.shape[:2]
    new_width = max(1, int(round(width * scale)))
    new_height = max(1, int(round(height * scale)))
    return cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_LINEAR)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0]
    if channels == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    raise ValueError(f"unsupported channel count: {channels}")


def to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    channels = image.shape[2]
    if channels == 3:
        return image
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    raise ValueError(f"unsupported channel count: {channels}")


def prepare(image: np.ndarray, factor: float, grayscale: bool) -> np.ndarray:
    """
    Downsample, then normalize channels so frame and template are comparable.

    Non-uint8 input is converted to float32, the other depth cv2.matchTemplate
    accepts.
    """
    reduced = downsample(image, factor)
    converted = to_grayscale(reduced) if grayscale else to_bgr(reduced)
    if converted.dtype != np.uint8 and converted.dtype != np.float32:
        converted = converted.astype(np.float32)
    return converted


def scale_region(region: ROIRegion, factor: float) -> PixelRegion:
    """
    Map a region from original frame space into downsample space, growing
    it outward so no covered pixel is lost.
    """
    x0 = int(math.floor(region.x * factor))
    y0 = int(math.floor(region.y * factor))
    x1 = int(math.ceil((region.x + region.w) * factor))
    y1 = int(math.ceil((region.y + region.h) * factor))
    return PixelRegion(x0, y0, x1 - x0, y1 - y0)


def clip_region(region: PixelRegion, width: int, height: int) -> PixelRegion | None:
    x0 = max(0, min(width, region.x))
    y0 = max(0, min(height, region.y))
    x1 = max(0, min(width, region.x + region.w))
    y1 = max(0, min(height, region.y + region.h))
    if x1 <= x0 or y1 <= y0:
        return None
    return PixelRegion(x0, y0, x1 - x0, y1 - y0)


def extract_roi(image: np.ndarray, region: PixelRegion) -> np.ndarray:
    """
    View of ``image`` covered by an already clipped region.
    """
    return image[region.y : region.y + region.h, region.x : region.x + region.w]


__all__ = [
    "MIN_DIMENSION",
    "PixelRegion",
    "clip_region",
    "downsample",
    "effective_factor",
    "extract_roi",
    "is_empty",
    "prepare",
    "rescale",
    "scale_region",
    "to_bgr",
    "to_grayscale",
]
