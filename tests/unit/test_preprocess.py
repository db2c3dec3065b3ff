import numpy as np
import pytest

from tmplstream.config import ROIRegion
from tmplstream.preprocess import (
    PixelRegion,
    clip_region,
    downsample,
    effective_factor,
    extract_roi,
    prepare,
    rescale,
    scale_region,
    to_grayscale,
)


def test_effective_factor_keeps_requested_factor_when_large_enough() -> None:
    assert effective_factor((360, 640, 3), (32, 32, 3), 0.5) == 0.5


def test_effective_factor_falls_back_when_template_too_small() -> None:
    assert effective_factor((360, 640, 3), (12, 40, 3), 0.33) == 1.0
    assert effective_factor((360, 640), (24, 24), 0.33) == 0.33


def test_downsample_uses_rounded_target_size() -> None:
    image = np.zeros((360, 640, 3), dtype=np.uint8)
    assert downsample(image, 0.5).shape == (180, 320, 3)
    assert downsample(image, 1.0) is image


def test_rescale_identity_returns_same_buffer() -> None:
    image = np.zeros((10, 20), dtype=np.uint8)
    assert rescale(image, 1.0) is image
    assert rescale(image, 1.5).shape == (15, 30)


@pytest.mark.parametrize("channels", [1, 3, 4])
def test_to_grayscale_accepts_common_layouts(channels) -> None:
    image = np.full((6, 8, channels), 120, dtype=np.uint8)
    gray = to_grayscale(image)
    assert gray.shape == (6, 8)


def test_prepare_converts_unsupported_depths_to_float32() -> None:
    image = np.ones((10, 10), dtype=np.float64)
    prepared = prepare(image, 1.0, grayscale=True)
    assert prepared.dtype == np.float32


def test_prepare_expands_gray_input_when_color_requested() -> None:
    prepared = prepare(np.zeros((10, 10), dtype=np.uint8), 1.0, grayscale=False)
    assert prepared.shape == (10, 10, 3)


def test_scale_region_grows_outward() -> None:
    region = scale_region(ROIRegion(x=10, y=5, w=11, h=7), 0.5)
    assert region == PixelRegion(x=5, y=2, w=6, h=4)


def test_clip_region_trims_to_image_bounds() -> None:
    assert clip_region(PixelRegion(-5, -5, 20, 20), 10, 10) == PixelRegion(0, 0, 10, 10)
    assert clip_region(PixelRegion(20, 20, 5, 5), 10, 10) is None


def test_extract_roi_returns_a_view() -> None:
    image = np.arange(100, dtype=np.uint8).reshape(10, 10)
    roi = extract_roi(image, PixelRegion(2, 3, 4, 5))
    assert roi.shape == (5, 4)
    assert roi[0, 0] == image[3, 2]
    assert np.shares_memory(roi, image)
