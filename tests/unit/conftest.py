from __future__ import annotations

from typing import Callable

import cv2
import numpy as np
import pytest

TextureFactory = Callable[..., np.ndarray]


def texture(height: int, width: int, seed: int = 0, channels: int = 3, sigma: float = 1.5) -> np.ndarray:
    rng = np.random.default_rng(seed)
    shape = (height, width) if channels == 1 else (height, width, channels)
    noise = rng.integers(0, 256, size=shape, dtype=np.uint8)
    return cv2.GaussianBlur(noise, (0, 0), sigmaX=sigma)


@pytest.fixture
def make_texture() -> TextureFactory:
    return texture


@pytest.fixture
def scene() -> np.ndarray:
    """640x360 BGR frame with a smooth random texture."""
    return texture(360, 640, seed=1)


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
