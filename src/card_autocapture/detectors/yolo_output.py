"""Decoding of raw YOLOv8 detector output into frame-space detections.

The detector emits one of two tensor layouts, with or without a leading
batch dimension:

- ``Layout.ROWS``: ``[num_detections][>=5]``, one ``[cx, cy, w, h, conf, ...]``
  row per detection;
- ``Layout.CHANNELS``: ``[>=5][num_detections]``, one array per field.

Coordinates are normalized to the letterboxed square input.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from enum import Enum
from typing import Any

from card_autocapture.errors import DecodeError
from card_autocapture.vision.alignment import alignment_score
from card_autocapture.vision.geometry import model_to_frame, normalized_to_model
from card_autocapture.vision.types import Detection, FrameGeometry

LOG = logging.getLogger(__name__)

# cx, cy, w, h, confidence
_REQUIRED_FIELDS = 5

Scorer = Callable[[float, float, float, float], float]


class Layout(Enum):
    """Known raw output layouts."""

    ROWS = "rows"
    CHANNELS = "channels"


def _is_seq(v: Any) -> bool:
    return isinstance(v, Sequence) and not isinstance(v, (str, bytes))


def _as_nested(output: Any) -> Any:
    """Turn array-likes (numpy, framework tensors with ``tolist``) into nested lists.

    Lists and tuples are walked recursively, so a list of per-row arrays is
    normalized as well.
    """
    if isinstance(output, (list, tuple)):
        return [_as_nested(v) for v in output]
    tolist = getattr(output, "tolist", None)
    if callable(tolist):
        return tolist()
    return output


def _first_output(output: Any) -> Any:
    """Pick the first tensor when the model returns a list of output tensors."""
    if isinstance(output, (list, tuple)) and output and getattr(output[0], "ndim", 0) >= 2:
        if len(output) > 1:
            LOG.debug("Model returned %d outputs; decoding the first", len(output))
        return output[0]
    return output


def _strip_batch(output: Any) -> Sequence[Any]:
    """Return the 2-D detection matrix, dropping a leading batch dimension if present."""
    output = _as_nested(_first_output(output))
    if not _is_seq(output) or len(output) == 0:
        raise DecodeError(f"expected a nested sequence, got {type(output).__name__}")
    first = output[0]
    if _is_seq(first) and len(first) > 0 and _is_seq(first[0]):
        if len(output) > 1:
            LOG.debug("Output has batch size %d; decoding batch item 0 only", len(output))
        return first
    return output


def _detect_layout(matrix: Sequence[Any]) -> Layout:
    first = matrix[0]
    if not _is_seq(first):
        raise DecodeError("output is not two-dimensional")
    outer = len(matrix)
    inner = len(first)
    rows_ok = inner >= _REQUIRED_FIELDS
    channels_ok = outer >= _REQUIRED_FIELDS
    if not rows_ok and not channels_ok:
        raise DecodeError(f"shape [{outer}][{inner}] matches no known layout")
    if rows_ok != channels_ok:
        return Layout.ROWS if rows_ok else Layout.CHANNELS
    # Both readings are possible: assume detections outnumber channels.
    return Layout.ROWS if outer > inner else Layout.CHANNELS


def detect_layout(output: Any) -> Layout:
    """Guess the layout of a raw output.

    The outer dimension is compared with the inner length of its first
    element: strictly longer means one row per detection. This relies on the
    detection count (thousands) exceeding the channel count (5-6) and is
    unreliable when they are close; pass an explicit `Layout` to
    `decode_output` when the model is known. When only one reading is
    structurally possible (at least 5 values per row, or at least 5 channels)
    that reading is returned.

    Raises:
        DecodeError: If the output is empty or not a nested 2-D/3-D structure.
    """
    return _detect_layout(_strip_batch(output))


def _iter_rows(matrix: Sequence[Any], layout: Layout) -> Iterator[tuple[Any, ...] | None]:
    """Yield one 5-tuple per candidate, or None when required values are missing."""
    if layout is Layout.ROWS:
        for row in matrix:
            if not _is_seq(row) or len(row) < _REQUIRED_FIELDS:
                yield None
                continue
            yield tuple(row[:_REQUIRED_FIELDS])
        return

    if len(matrix) < _REQUIRED_FIELDS:
        raise DecodeError(f"channel layout needs {_REQUIRED_FIELDS} channels, got {len(matrix)}")
    channels = list(matrix[:_REQUIRED_FIELDS])
    if not all(_is_seq(ch) for ch in channels):
        raise DecodeError("channel layout has a non-sequence channel")
    for i in range(len(channels[0])):
        yield tuple(ch[i] if i < len(ch) else None for ch in channels)


def _decode_row(
    values: tuple[Any, ...],
    geometry: FrameGeometry,
    *,
    confidence_threshold: float,
    scorer: Scorer,
) -> Detection | None:
    if any(v is None for v in values):
        return None
    cx, cy, w, h, conf = (float(v) for v in values)
    # NaN compares False, so it never passes.
    if not conf > confidence_threshold:
        return None

    box = model_to_frame(normalized_to_model(cx, cy, w, h, geometry.input_size), geometry)
    aspect = box.aspect_ratio()
    return Detection(
        box=box,
        confidence=conf,
        aspect_ratio=aspect,
        alignment_score=scorer(
            aspect, box.area(), geometry.original_width, geometry.original_height
        ),
    )


def decode_output(
    output: Any,
    geometry: FrameGeometry,
    *,
    confidence_threshold: float,
    layout: Layout | None = None,
    scorer: Scorer = alignment_score,
) -> list[Detection]:
    """Decode a raw output into detections sorted by confidence (highest first).

    Args:
        output: Nested sequences or an array-like with ``tolist()``, in either
            layout, optionally wrapped in a batch dimension (item 0 is used).
            A list of output tensors is reduced to its first tensor.
        geometry: Letterbox parameters of the frame the output belongs to.
        confidence_threshold: Rows need a confidence strictly above this.
        layout: Known layout; when None it is inferred with `detect_layout`.
        scorer: ``(aspect_ratio, area, frame_w, frame_h) -> score`` callable.

    Returns:
        Detections in original-frame pixels. Equal confidences keep their
        original order.

    Raises:
        DecodeError: If the overall shape is malformed. Individual bad rows are
            skipped and logged instead. Exceptions from `scorer` other than
            ``TypeError``, ``ValueError`` and ``ArithmeticError`` propagate.
    """
    matrix = _strip_batch(output)
    if layout is None:
        layout = _detect_layout(matrix)

    detections: list[Detection] = []
    failures = 0
    for i, values in enumerate(_iter_rows(matrix, layout)):
        if values is None:
            continue
        try:
            det = _decode_row(
                values,
                geometry,
                confidence_threshold=confidence_threshold,
                scorer=scorer,
            )
        except (TypeError, ValueError, ArithmeticError) as e:
            failures += 1
            LOG.debug("Skipping row %d: %s", i, e)
            continue
        if det is not None:
            detections.append(det)

    if failures:
        LOG.warning("Skipped %d undecodable rows (layout=%s)", failures, layout.value)
    return sorted(detections, key=lambda d: d.confidence, reverse=True)
