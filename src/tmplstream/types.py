from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .config import ROIRegion


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One captured snapshot. Holds a private read-only copy of the pixels.
    """

    data: np.ndarray
    width: int
    height: int
    timestamp: float
    hash: str

    def __post_init__(self) -> None:
        _freeze_copy(self)


@dataclass(frozen=True, slots=True)
class Template:
    """
    Named reference image, optionally restricted to its own search region.
    Holds a private read-only copy of the pixels.
    """

    name: str
    data: np.ndarray
    roi: ROIRegion | None = None

    def __post_init__(self) -> None:
        _freeze_copy(self)

    @property
    def width(self) -> int:
        return int(self.data.shape[1]) if self.data.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.data.shape[0]) if self.data.ndim >= 2 else 0


def _freeze_copy(record: "Frame | Template") -> None:
    data = np.array(record.data, copy=True)
    data.flags.writeable = False
    object.__setattr__(record, "data", data)


__all__ = ["Frame", "Template"]
