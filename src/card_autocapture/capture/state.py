"""Consecutive-good-detection hysteresis that turns per-frame detections into captures.

The state machine is a pure reducer: `step` maps ``(state, detections)`` to a
new state, an optional `CaptureEvent` and the `StatusUpdate` for this tick.
It performs no I/O; callers act on the event.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from card_autocapture.capture.config import CaptureConfig
from card_autocapture.vision.types import Box, Detection


class Phase(Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    CAPTURED = "captured"


class StatusKind(Enum):
    """Status categories understood by the status-display collaborator."""

    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    ACTIVE = "active"


@dataclass(frozen=True, slots=True)
class StatusUpdate:
    message: str
    kind: StatusKind


@dataclass(frozen=True, slots=True, kw_only=True)
class CaptureEvent:
    """Raised once when enough consecutive good detections were seen."""

    box: Box
    confidence: float
    alignment_score: float


@dataclass(frozen=True, slots=True, kw_only=True)
class CaptureState:
    """Counter and switch carried across ticks of one capture session."""

    consecutive_good_count: int = 0
    auto_capture_enabled: bool = False

    @property
    def phase(self) -> Phase:
        return Phase.SEARCHING if self.auto_capture_enabled else Phase.IDLE


@dataclass(frozen=True, slots=True, kw_only=True)
class TickResult:
    """Outcome of one tick."""

    state: CaptureState
    status: StatusUpdate
    event: CaptureEvent | None = None

    @property
    def phase(self) -> Phase:
        """`Phase.CAPTURED` on the tick a capture fires, else the new state's phase."""
        if self.event is not None:
            return Phase.CAPTURED
        return self.state.phase


MSG_ENABLED = "Auto-capture enabled. Hold a card steady in the frame."
MSG_DISABLED = "Auto-capture disabled."
MSG_NO_DETECTION = "No card detected. Position a card in the frame."
MSG_REPOSITION = "Auto-capture active: Position card properly in the frame"
MSG_CAPTURED = "Card auto-captured successfully!"


def progress_message(count: int, required: int) -> str:
    return f"Card detected - Holding steady: {count}/{required}"


def is_good_detection(detection: Detection, config: CaptureConfig) -> bool:
    """True when a detection passes both the confidence and alignment thresholds."""
    return (
        detection.confidence > config.confidence_threshold
        and detection.alignment_score > config.min_alignment_score
    )


def step(
    state: CaptureState,
    detections: Sequence[Detection],
    config: CaptureConfig,
) -> TickResult:
    """Advance the state machine by one tick.

    Only ``detections[0]`` (the highest-confidence detection) is inspected.
    An empty list resets the counter, while a failing top detection only
    decrements it (floored at 0), so one noisy frame costs a single step of
    progress.
    """
    if not state.auto_capture_enabled:
        return TickResult(state=state, status=StatusUpdate(MSG_DISABLED, StatusKind.WARNING))

    if not detections:
        return TickResult(
            state=replace(state, consecutive_good_count=0),
            status=StatusUpdate(MSG_NO_DETECTION, StatusKind.ACTIVE),
        )

    best = detections[0]
    if not is_good_detection(best, config):
        return TickResult(
            state=replace(state, consecutive_good_count=max(0, state.consecutive_good_count - 1)),
            status=StatusUpdate(MSG_REPOSITION, StatusKind.ACTIVE),
        )

    count = state.consecutive_good_count + 1
    required = config.min_consecutive_detections
    if count >= required:
        return TickResult(
            state=replace(state, consecutive_good_count=0),
            status=StatusUpdate(MSG_CAPTURED, StatusKind.SUCCESS),
            event=CaptureEvent(
                box=best.box,
                confidence=best.confidence,
                alignment_score=best.alignment_score,
            ),
        )
    return TickResult(
        state=replace(state, consecutive_good_count=count),
        status=StatusUpdate(progress_message(count, required), StatusKind.ACTIVE),
    )


def set_auto_capture(state: CaptureState, enabled: bool) -> tuple[CaptureState, StatusUpdate]:
    """Switch auto-capture on or off; the counter is reset either way."""
    new_state = replace(state, consecutive_good_count=0, auto_capture_enabled=enabled)
    if enabled:
        return new_state, StatusUpdate(MSG_ENABLED, StatusKind.ACTIVE)
    return new_state, StatusUpdate(MSG_DISABLED, StatusKind.WARNING)


def toggle_auto_capture(state: CaptureState) -> tuple[CaptureState, StatusUpdate]:
    return set_auto_capture(state, not state.auto_capture_enabled)
