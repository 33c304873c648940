"""Coordinate mapping between sensor frame, letterboxed input and model output.

Three spaces are involved:

- frame space: pixels of the original sensor frame;
- model space: pixels of the square, letterboxed model input;
- normalized space: model-space coordinates divided by the input size, as
  emitted by the detector (box centers and sizes in [0, 1]).

All functions are pure. NaN and infinities propagate unchanged.
"""

from __future__ import annotations

import math

from card_autocapture.errors import ConfigError, InvalidDimensions
from card_autocapture.vision.types import Box, FrameGeometry


def _round_half_up(v: float) -> int:
    # Python's round() is banker's rounding; the letterbox step rounds .5 up.
    return math.floor(v + 0.5)


def compute_frame_geometry(
    original_width: int,
    original_height: int,
    input_size: int = 640,
) -> FrameGeometry:
    """Compute the letterbox parameters for a frame of the given size.

    The frame is scaled uniformly to fit the square input, then padded
    symmetrically; an odd padding puts the extra pixel at the bottom/right.

    Raises:
        ConfigError: If ``input_size`` is not positive.
        InvalidDimensions: If either frame dimension is not positive and finite.
    """
    if input_size <= 0:
        raise ConfigError(f"input_size must be positive, got {input_size}")
    finite = math.isfinite(original_width) and math.isfinite(original_height)
    if not finite or original_width <= 0 or original_height <= 0:
        raise InvalidDimensions(
            f"frame dimensions must be positive, got {original_width}x{original_height}"
        )

    scale = min(input_size / original_width, input_size / original_height)
    scaled_w = _round_half_up(original_width * scale)
    scaled_h = _round_half_up(original_height * scale)
    padding_w = input_size - scaled_w
    padding_h = input_size - scaled_h
    return FrameGeometry(
        input_size=int(input_size),
        original_width=int(original_width),
        original_height=int(original_height),
        top_padding=padding_h // 2,
        left_padding=padding_w // 2,
        scale=float(scale),
    )


def scaled_size(geometry: FrameGeometry) -> tuple[int, int]:
    """Return the (width, height) of the resized frame inside the padded input."""
    return (
        _round_half_up(geometry.original_width * geometry.scale),
        _round_half_up(geometry.original_height * geometry.scale),
    )


def normalized_to_model(cx: float, cy: float, w: float, h: float, input_size: int) -> Box:
    """Convert a normalized center/size box to a top-left box in model pixels."""
    return Box(
        x=(cx - w / 2.0) * input_size,
        y=(cy - h / 2.0) * input_size,
        width=w * input_size,
        height=h * input_size,
    )


def model_to_frame(box: Box, geometry: FrameGeometry) -> Box:
    """Map a model-space box back to original-frame pixels (remove padding, unscale)."""
    s = geometry.scale
    return Box(
        x=(box.x - geometry.left_padding) / s,
        y=(box.y - geometry.top_padding) / s,
        width=box.width / s,
        height=box.height / s,
    )


def frame_to_model(box: Box, geometry: FrameGeometry) -> Box:
    """Map an original-frame box into model-space pixels (inverse of `model_to_frame`)."""
    s = geometry.scale
    return Box(
        x=box.x * s + geometry.left_padding,
        y=box.y * s + geometry.top_padding,
        width=box.width * s,
        height=box.height * s,
    )
