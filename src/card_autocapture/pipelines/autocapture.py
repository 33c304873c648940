"""Per-frame auto-capture driver: decode -> score -> hysteresis -> crop plan.

A `CaptureSession` owns the only mutable state of the core (the
`CaptureState`). It is not thread-safe: callers must keep at most one
`process_frame` call in flight. Skipping a frame is harmless; the counter
simply does not advance.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from card_autocapture.capture.config import CaptureConfig
from card_autocapture.capture.crop import InvalidCrop, full_frame_crop, plan_crop
from card_autocapture.capture.state import (
    CaptureEvent,
    CaptureState,
    StatusKind,
    StatusUpdate,
    TickResult,
    set_auto_capture,
    step,
)
from card_autocapture.detectors.yolo_output import Layout, decode_output
from card_autocapture.errors import DecodeError, InvalidDimensions
from card_autocapture.vision.alignment import alignment_score
from card_autocapture.vision.geometry import compute_frame_geometry
from card_autocapture.vision.types import CropRectangle, Detection

LOG = logging.getLogger(__name__)

MSG_MANUAL_CAPTURE = "Card captured manually"
MSG_INVALID_CROP = "Could not crop the card. Keep it fully inside the frame."
MSG_INVALID_FRAME = "Frame not available"

StatusCallback = Callable[[StatusUpdate], None]
CaptureCallback = Callable[[CropRectangle, CaptureEvent | None], None]


@dataclass(frozen=True, slots=True, kw_only=True)
class FrameResult:
    """Everything a tick produces for the render/extract collaborators."""

    detections: list[Detection]
    status: StatusUpdate
    event: CaptureEvent | None = None
    crop: CropRectangle | None = None


@dataclass
class CaptureSession:
    """Stateful driver for one capture session.

    Attributes:
        config: Thresholds shared by all stages.
        on_status: Called with the `StatusUpdate` of every tick and toggle.
        on_capture: Called with the crop (and the event, None for manual
            captures) whenever a capture is accepted.
        layout: Known raw output layout; None infers it per frame.
    """

    config: CaptureConfig = field(default_factory=CaptureConfig)
    on_status: StatusCallback | None = None
    on_capture: CaptureCallback | None = None
    layout: Layout | None = None

    def __post_init__(self) -> None:
        self._state = CaptureState()
        self._last_capture: CropRectangle | None = None
        self._scorer = partial(
            alignment_score,
            ideal_aspect_ratio=self.config.card_aspect_ratio,
            aspect_tolerance=self.config.aspect_tolerance,
        )
        LOG.info("Initialized CaptureSession")
        LOG.info("  input_size:           %s", self.config.input_size)
        LOG.info("  confidence_threshold: %s", self.config.confidence_threshold)
        LOG.info("  min_consecutive:      %s", self.config.min_consecutive_detections)

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def auto_capture_enabled(self) -> bool:
        return self._state.auto_capture_enabled

    @property
    def card_captured(self) -> bool:
        return self._last_capture is not None

    @property
    def last_capture(self) -> CropRectangle | None:
        return self._last_capture

    def _emit(self, status: StatusUpdate) -> StatusUpdate:
        if self.on_status is not None:
            self.on_status(status)
        return status

    def _accept(self, crop: CropRectangle, event: CaptureEvent | None) -> None:
        self._last_capture = crop
        if self.on_capture is not None:
            self.on_capture(crop, event)

    # ------------------------------------------------------------------
    # Auto-capture switch
    # ------------------------------------------------------------------

    def set_auto_capture(self, enabled: bool) -> StatusUpdate:
        self._state, status = set_auto_capture(self._state, enabled)
        LOG.info("Auto-capture %s", "enabled" if enabled else "disabled")
        return self._emit(status)

    def enable_auto_capture(self) -> StatusUpdate:
        return self.set_auto_capture(True)

    def disable_auto_capture(self) -> StatusUpdate:
        return self.set_auto_capture(False)

    def toggle_auto_capture(self) -> StatusUpdate:
        return self.set_auto_capture(not self._state.auto_capture_enabled)

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------

    def decode(
        self,
        output: Any,
        frame_width: int,
        frame_height: int,
        *,
        layout: Layout | None = None,
    ) -> list[Detection]:
        """Decode one raw output; malformed frames yield an empty list."""
        try:
            geometry = compute_frame_geometry(frame_width, frame_height, self.config.input_size)
            return decode_output(
                output,
                geometry,
                confidence_threshold=self.config.confidence_threshold,
                layout=layout if layout is not None else self.layout,
                scorer=self._scorer,
            )
        except InvalidDimensions as e:
            LOG.warning("Skipping frame with invalid dimensions: %s", e)
        except DecodeError as e:
            LOG.warning("Skipping undecodable output: %s", e)
        except Exception:
            LOG.exception("Decoding failed; treating frame as having no detection")
        return []

    def process_frame(
        self,
        output: Any,
        frame_width: int,
        frame_height: int,
        *,
        layout: Layout | None = None,
    ) -> FrameResult:
        """Run one full tick for a raw detector output.

        If the state machine fires but the crop degenerates, the capture is
        dropped and the pre-tick state is kept, so the next good detection
        retries immediately.
        """
        detections = self.decode(output, frame_width, frame_height, layout=layout)
        result: TickResult = step(self._state, detections, self.config)

        if result.event is None:
            self._state = result.state
            return FrameResult(detections=detections, status=self._emit(result.status))

        planned = plan_crop(
            result.event.box,
            frame_width,
            frame_height,
            aspect_ratio=self.config.card_aspect_ratio,
            margin=self.config.crop_margin,
        )
        if isinstance(planned, InvalidCrop):
            LOG.warning("Dropping capture, invalid crop (%s): %s", planned.reason, planned)
            status = StatusUpdate(MSG_INVALID_CROP, StatusKind.WARNING)
            return FrameResult(detections=detections, status=self._emit(status))

        self._state = result.state
        LOG.info(
            "Card captured: confidence=%.3f alignment=%.3f crop=%s",
            result.event.confidence,
            result.event.alignment_score,
            planned,
        )
        self._accept(planned, result.event)
        return FrameResult(
            detections=detections,
            status=self._emit(result.status),
            event=result.event,
            crop=planned,
        )

    def manual_capture(self, frame_width: int, frame_height: int) -> CropRectangle | None:
        """Capture the whole frame regardless of detections.

        Does not touch the auto-capture counter. Returns None when the frame
        size is unusable.
        """
        planned = full_frame_crop(frame_width, frame_height)
        if isinstance(planned, InvalidCrop):
            LOG.warning("Manual capture failed: %s", planned.reason)
            self._emit(StatusUpdate(MSG_INVALID_FRAME, StatusKind.ERROR))
            return None
        self._accept(planned, None)
        self._emit(StatusUpdate(MSG_MANUAL_CAPTURE, StatusKind.SUCCESS))
        return planned
