import math

import pytest

from card_autocapture.capture.crop import InvalidCrop, full_frame_crop, plan_crop
from card_autocapture.vision.alignment import CARD_ASPECT_RATIO
from card_autocapture.vision.types import Box, CropRectangle


def _contained(c: CropRectangle, w: float, h: float) -> bool:
    return c.x >= 0 and c.y >= 0 and c.x + c.width <= w + 1e-9 and c.y + c.height <= h + 1e-9


def test_portrait_box_is_reshaped_towards_card_ratio() -> None:
    box = Box(x=100, y=50, width=200, height=300)
    crop = plan_crop(box, 640, 480)

    assert isinstance(crop, CropRectangle)
    ratio = crop.width / crop.height
    assert abs(ratio - CARD_ASPECT_RATIO) < abs(box.aspect_ratio() - CARD_ASPECT_RATIO)
    assert ratio == pytest.approx(CARD_ASPECT_RATIO)
    for w, h in [(640, 480), (1280, 720), (1920, 1080)]:
        c = plan_crop(box, w, h)
        assert isinstance(c, CropRectangle)
        assert _contained(c, w, h)


def test_crop_math() -> None:
    box = Box(x=100, y=50, width=200, height=300)
    crop = plan_crop(box, 640, 480)
    adjusted_h = 200 / CARD_ASPECT_RATIO
    adjusted_y = 50 + (300 - adjusted_h) / 2
    assert isinstance(crop, CropRectangle)
    assert crop.x == pytest.approx(90.0)
    assert crop.y == pytest.approx(adjusted_y - 0.05 * adjusted_h)
    assert crop.width == pytest.approx(220.0)
    assert crop.height == pytest.approx(1.1 * adjusted_h)


def test_negative_recentered_y_falls_back_to_box_y() -> None:
    box = Box(x=10, y=5, width=100, height=20)
    crop = plan_crop(box, 640, 480)
    adjusted_h = 100 / CARD_ASPECT_RATIO
    assert isinstance(crop, CropRectangle)
    assert crop.y == pytest.approx(5 - 0.05 * adjusted_h)
    assert crop.height == pytest.approx(1.1 * adjusted_h)


def test_crop_is_clamped_to_frame() -> None:
    box = Box(x=600, y=420, width=100, height=63)
    crop = plan_crop(box, 640, 480)
    assert isinstance(crop, CropRectangle)
    assert crop.x == pytest.approx(595.0)
    assert crop.width == pytest.approx(45.0)
    assert _contained(crop, 640, 480)

    left = plan_crop(Box(x=-30, y=-30, width=200, height=126), 640, 480)
    assert isinstance(left, CropRectangle)
    assert (left.x, left.y) == (0.0, 0.0)


def test_box_outside_frame_is_invalid() -> None:
    res = plan_crop(Box(x=700, y=10, width=50, height=30), 640, 480)
    assert isinstance(res, InvalidCrop)
    assert res.reason == "non-positive size"
    assert res.width < 0


@pytest.mark.parametrize(
    "box",
    [
        Box(x=math.nan, y=0, width=10, height=10),
        Box(x=0, y=0, width=math.inf, height=10),
    ],
)
def test_non_finite_box_is_invalid(box: Box) -> None:
    assert isinstance(plan_crop(box, 640, 480), InvalidCrop)


def test_input_box_is_not_mutated() -> None:
    box = Box(x=100, y=50, width=200, height=300)
    plan_crop(box, 640, 480)
    assert box == Box(x=100, y=50, width=200, height=300)


def test_custom_margin_and_ratio() -> None:
    crop = plan_crop(Box(x=100, y=100, width=100, height=100), 640, 480, aspect_ratio=1.0, margin=0.0)
    assert crop == CropRectangle(x=100.0, y=100.0, width=100.0, height=100.0)


def test_full_frame_crop() -> None:
    assert full_frame_crop(1280, 720) == CropRectangle(x=0.0, y=0.0, width=1280.0, height=720.0)
    assert isinstance(full_frame_crop(0, 720), InvalidCrop)


def test_as_pil_box_rounds_outwards() -> None:
    c = CropRectangle(x=10.4, y=5.6, width=20.2, height=9.9)
    assert c.as_pil_box() == (10, 5, 31, 16)
