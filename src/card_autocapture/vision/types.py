"""Core vision data types shared by decoding, scoring and cropping."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Box:
    """Axis-aligned box given by its top-left corner and size.

    The coordinate space is set by the producer: model-input pixels for
    boxes fresh out of the detector, original-frame pixels after mapping.
    Values may be negative or exceed the frame; nothing is clamped here.
    """

    x: float
    y: float
    width: float
    height: float

    def area(self) -> float:
        """Return width * height (may be negative for degenerate boxes)."""
        return self.width * self.height

    def aspect_ratio(self) -> float:
        """Return width / height, or NaN when the height is zero."""
        if self.height == 0:
            return math.nan
        return self.width / self.height

    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0


@dataclass(frozen=True, slots=True, kw_only=True)
class FrameGeometry:
    """Parameters of the letterbox transform applied to one frame.

    Attributes:
        input_size: Side of the square model input (e.g. 640).
        original_width, original_height: Sensor frame size in pixels.
        top_padding, left_padding: Padding added above/left of the resized frame.
        scale: Uniform scale factor applied before padding,
            ``min(input_size / original_width, input_size / original_height)``.
    """

    input_size: int
    original_width: int
    original_height: int
    top_padding: int
    left_padding: int
    scale: float


@dataclass(frozen=True, slots=True, kw_only=True)
class Detection:
    """A decoded detection in original-frame pixel coordinates."""

    box: Box
    confidence: float
    aspect_ratio: float
    alignment_score: float


@dataclass(frozen=True, slots=True)
class CropRectangle:
    """Crop area in original-frame pixels, clamped to the frame bounds."""

    x: float
    y: float
    width: float
    height: float

    def as_pil_box(self) -> tuple[int, int, int, int]:
        """Return integer ``(left, upper, right, lower)`` for ``Image.crop``."""
        x1 = math.floor(self.x)
        y1 = math.floor(self.y)
        x2 = math.ceil(self.x + self.width)
        y2 = math.ceil(self.y + self.height)
        return x1, y1, x2, y2
