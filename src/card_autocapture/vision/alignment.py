"""Framing-quality heuristic for a detected card."""

from __future__ import annotations

import math
from typing import Literal

# ID-1 card, 85.6mm x 54mm.
CARD_ASPECT_RATIO = 1.585
ASPECT_TOLERANCE = 0.2

_ASPECT_WEIGHT = 0.6
_AREA_WEIGHT = 0.4


def _area_score(area_ratio: float) -> float:
    """Piecewise score for the fraction of the frame covered by the card."""
    if 0.08 < area_ratio < 0.7:
        return 1.0
    if 0.03 < area_ratio < 0.9:
        return 0.7
    return 0.0


def alignment_score(
    aspect_ratio: float,
    area: float,
    frame_width: float,
    frame_height: float,
    *,
    ideal_aspect_ratio: float = CARD_ASPECT_RATIO,
    aspect_tolerance: float = ASPECT_TOLERANCE,
) -> float:
    """Score in [0, 1] of how well a box matches a well-framed card.

    Combines a linear aspect-ratio term (full marks at ``ideal_aspect_ratio``,
    zero at ``aspect_tolerance`` relative error) weighted 0.6 with a stepped
    area term weighted 0.4. Degenerate inputs (non-positive or non-finite
    ratio/area, empty frame) score 0.
    """
    if not (math.isfinite(aspect_ratio) and math.isfinite(area)):
        return 0.0
    if aspect_ratio <= 0 or area <= 0:
        return 0.0
    frame_area = frame_width * frame_height
    if not math.isfinite(frame_area) or frame_area <= 0:
        return 0.0

    aspect_error = abs(aspect_ratio - ideal_aspect_ratio) / ideal_aspect_ratio
    aspect_score = max(0.0, 1.0 - aspect_error / aspect_tolerance)
    area_score = _area_score(area / frame_area)
    return _ASPECT_WEIGHT * aspect_score + _AREA_WEIGHT * area_score


def alignment_band(score: float) -> Literal["excellent", "good", "poor"]:
    """Bucket an alignment score for overlay colouring (lime / yellow / red)."""
    if score > 0.8:
        return "excellent"
    if score > 0.5:
        return "good"
    return "poor"
