"""Crop planning for an accepted capture."""

from __future__ import annotations

import math
from dataclasses import dataclass

from card_autocapture.vision.alignment import CARD_ASPECT_RATIO
from card_autocapture.vision.types import Box, CropRectangle


@dataclass(frozen=True, slots=True, kw_only=True)
class InvalidCrop:
    """Returned instead of a rectangle when the crop degenerates.

    Callers skip the capture and wait for the next good detection.
    """

    reason: str
    x: float
    y: float
    width: float
    height: float


def plan_crop(
    box: Box,
    frame_width: float,
    frame_height: float,
    *,
    aspect_ratio: float = CARD_ASPECT_RATIO,
    margin: float = 0.05,
) -> CropRectangle | InvalidCrop:
    """Compute the crop rectangle for a detected card.

    The height is recomputed from the width to match ``aspect_ratio`` and
    re-centered vertically (falling back to the detected height/y when the
    result is non-positive/negative), a ``margin`` is added on every side,
    and the result is clamped to ``[0, frame_width] x [0, frame_height]``.
    """
    values = (box.x, box.y, box.width, box.height, frame_width, frame_height)
    if not all(math.isfinite(v) for v in values):
        return InvalidCrop(
            reason="non-finite input",
            x=box.x,
            y=box.y,
            width=box.width,
            height=box.height,
        )

    adjusted_h = box.width / aspect_ratio
    adjusted_y = box.y + (box.height - adjusted_h) / 2.0
    if adjusted_h <= 0:
        adjusted_h = box.height
    if adjusted_y < 0:
        adjusted_y = box.y

    margin_x = box.width * margin
    margin_y = adjusted_h * margin
    x = max(0.0, box.x - margin_x)
    y = max(0.0, adjusted_y - margin_y)
    width = min(box.width + 2.0 * margin_x, frame_width - x)
    height = min(adjusted_h + 2.0 * margin_y, frame_height - y)

    if width <= 0 or height <= 0:
        return InvalidCrop(reason="non-positive size", x=x, y=y, width=width, height=height)
    return CropRectangle(x=x, y=y, width=width, height=height)


def full_frame_crop(frame_width: float, frame_height: float) -> CropRectangle | InvalidCrop:
    """Crop covering the whole frame, used for manual captures."""
    if not (frame_width > 0 and frame_height > 0):
        return InvalidCrop(
            reason="non-positive frame",
            x=0.0,
            y=0.0,
            width=frame_width,
            height=frame_height,
        )
    return CropRectangle(x=0.0, y=0.0, width=float(frame_width), height=float(frame_height))
