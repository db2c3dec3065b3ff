import pytest

from tmplstream import CoordinateMapper, DisplayGeometry, MatchResult, Rect


@pytest.fixture
def mapper() -> CoordinateMapper:
    return CoordinateMapper.from_geometry(DisplayGeometry(1920, 1080, Rect(100, 50, 960, 540)))


def test_scale_and_offset(mapper) -> None:
    assert mapper.scale_x == pytest.approx(0.5)
    assert mapper.scale_y == pytest.approx(0.5)
    assert (mapper.offset_x, mapper.offset_y) == (100, 50)


def test_to_display(mapper) -> None:
    assert mapper.to_display(Rect(200, 100, 40, 20)) == Rect(200, 100, 20, 10)


@pytest.mark.parametrize("rect", [Rect(0, 0, 10, 10), Rect(333, 217, 41, 59), Rect(1900, 1060, 20, 20)])
def test_round_trip_within_one_pixel(mapper, rect) -> None:
    back = mapper.to_capture(mapper.to_display(rect))

    for original, restored in zip((rect.x, rect.y, rect.w, rect.h), (back.x, back.y, back.w, back.h)):
        assert abs(original - restored) <= 1


def test_to_capture_floors_fractional_pixels() -> None:
    mapper = CoordinateMapper(640, 480, Rect(0, 0, 1000, 750))

    rect = mapper.to_capture(Rect(101, 101, 99, 99))

    assert rect == Rect(64, 64, 63, 63)


def test_match_to_display_uses_scaled_template_size(mapper) -> None:
    result = MatchResult(score=0.9, x=400, y=200, scale=1.5, template_width=40, template_height=20)

    assert mapper.match_to_display(result) == Rect(300, 150, 30, 15)


@pytest.mark.parametrize(
    "width, height, visible",
    [(0, 1080, Rect(0, 0, 10, 10)), (1920, 1080, Rect(0, 0, 0, 10))],
)
def test_rejects_degenerate_geometry(width, height, visible) -> None:
    with pytest.raises(ValueError):
        CoordinateMapper(width, height, visible)


def test_rect_helpers() -> None:
    rect = Rect(10, 20, 30, 40)
    assert (rect.right, rect.bottom) == (40, 60)
    assert rect.center == (25, 40)


@pytest.mark.parametrize("rect", [Rect(100, 50, 20, 10), Rect(150.3, 80.7, 20.2, 10.9), Rect(1000.4, 555.5, 60, 33.3)])
def test_display_round_trip_within_one_pixel(mapper, rect) -> None:
    back = mapper.to_display(mapper.to_capture(rect))

    for original, restored in zip((rect.x, rect.y, rect.w, rect.h), (back.x, back.y, back.w, back.h)):
        assert abs(original - restored) <= 1
