from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from .matching import MatchResult


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.w / 2.0, self.y + self.h / 2.0)


@dataclass(frozen=True, slots=True)
class DisplayGeometry:
    """
    Snapshot of where the captured video currently appears on screen.
    """

    capture_width: int
    capture_height: int
    visible: Rect


@dataclass(frozen=True, slots=True)
class CoordinateMapper:
    """
    Converts rectangles between capture pixels and display coordinates.

    Build a new mapper for every conversion; the visible rectangle can move
    or resize between calls.
    """

    capture_width: int
    capture_height: int
    visible: Rect

    def __post_init__(self) -> None:
        if self.capture_width <= 0 or self.capture_height <= 0:
            raise ValueError("capture size must be positive")
        if self.visible.w <= 0 or self.visible.h <= 0:
            raise ValueError("visible rectangle must have a positive size")

    @classmethod
    def from_geometry(cls, geometry: DisplayGeometry) -> "CoordinateMapper":
        return cls(geometry.capture_width, geometry.capture_height, geometry.visible)

    @property
    def scale_x(self) -> float:
        return self.visible.w / self.capture_width

    @property
    def scale_y(self) -> float:
        return self.visible.h / self.capture_height

    @property
    def offset_x(self) -> float:
        return self.visible.x

    @property
    def offset_y(self) -> float:
        return self.visible.y

    def to_display(self, rect: Rect) -> Rect:
        return Rect(
            x=self.offset_x + rect.x * self.scale_x,
            y=self.offset_y + rect.y * self.scale_y,
            w=rect.w * self.scale_x,
            h=rect.h * self.scale_y,
        )

    def to_capture(self, rect: Rect) -> Rect:
        """
        Display rectangle to whole capture pixels (floored), e.g. for cropping.
        """
        return Rect(
            x=math.floor((rect.x - self.offset_x) / self.scale_x),
            y=math.floor((rect.y - self.offset_y) / self.scale_y),
            w=math.floor(rect.w / self.scale_x),
            h=math.floor(rect.h / self.scale_y),
        )

    def match_to_display(self, result: MatchResult) -> Rect:
        """
        On-screen rectangle covered by a match, including its sweep scale.
        """
        capture_rect = Rect(
            x=result.x,
            y=result.y,
            w=result.template_width * result.scale,
            h=result.template_height * result.scale,
        )
        return self.to_display(capture_rect)


__all__ = ["CoordinateMapper", "DisplayGeometry", "Rect"]
