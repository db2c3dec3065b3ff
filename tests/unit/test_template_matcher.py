import numpy as np
import pytest

from tmplstream import MatchMethod, TemplateMatcher


def test_match_returns_expected_location_for_exact_match() -> None:
    base = np.zeros((10, 10), dtype=np.uint8)
    base[3:6, 4:7] = 255
    template = base[3:6, 4:7]

    matcher = TemplateMatcher(method=MatchMethod.SQDIFF_NORMED)
    location, score, heatmap = matcher.match(base, template)

    assert location == (4, 3)
    assert score == pytest.approx(1.0, abs=1e-6)
    assert heatmap.shape == (base.shape[0] - template.shape[0] + 1, base.shape[1] - template.shape[1] + 1)


@pytest.mark.parametrize("method", [MatchMethod.CCOEFF_NORMED, MatchMethod.CCORR_NORMED])
def test_correlation_methods_report_max_location(make_texture, method) -> None:
    image = make_texture(80, 120, seed=3, channels=1)
    template = image[20:36, 50:70].copy()

    location, score, _ = TemplateMatcher(method=method).match(image, template)

    assert location == (50, 20)
    assert score == pytest.approx(1.0, abs=1e-4)


def test_fits_rejects_oversized_and_empty_templates() -> None:
    matcher = TemplateMatcher()
    image = np.zeros((20, 20), dtype=np.uint8)

    assert matcher.fits(image, np.zeros((20, 20), dtype=np.uint8))
    assert not matcher.fits(image, np.zeros((21, 5), dtype=np.uint8))
    assert not matcher.fits(image, np.zeros((0, 5), dtype=np.uint8))


def test_match_rejects_mismatched_dimensionality() -> None:
    with pytest.raises(ValueError):
        TemplateMatcher().match(np.zeros((10, 10), dtype=np.uint8), np.zeros((3, 3, 3), dtype=np.uint8))
