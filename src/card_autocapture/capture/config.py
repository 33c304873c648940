"""Auto-capture configuration and its YAML loader."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from card_autocapture.errors import ConfigError
from card_autocapture.vision.alignment import ASPECT_TOLERANCE, CARD_ASPECT_RATIO


@dataclass(frozen=True, slots=True, kw_only=True)
class CaptureConfig:
    """Immutable thresholds for decoding, scoring, capture and cropping.

    Attributes:
        input_size: Side of the square model input.
        confidence_threshold: Detections need a confidence strictly above this.
        min_consecutive_detections: Good ticks needed before a capture fires.
        min_alignment_score: Top detection needs an alignment strictly above this.
        card_aspect_ratio: Target long/short side ratio of the card.
        aspect_tolerance: Relative aspect error at which the aspect score hits 0.
        crop_margin: Margin added on each side of the crop, as a fraction.
        output_width: Width of the extracted card image in pixels.
    """

    input_size: int = 640
    confidence_threshold: float = 0.85
    min_consecutive_detections: int = 3
    min_alignment_score: float = 0.5
    card_aspect_ratio: float = CARD_ASPECT_RATIO
    aspect_tolerance: float = ASPECT_TOLERANCE
    crop_margin: float = 0.05
    output_width: int = 640

    def __post_init__(self) -> None:
        if self.input_size <= 0:
            raise ConfigError(f"input_size must be positive, got {self.input_size}")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ConfigError(
                f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}"
            )
        if self.min_consecutive_detections < 1:
            raise ConfigError(
                "min_consecutive_detections must be >= 1, "
                f"got {self.min_consecutive_detections}"
            )
        if not 0.0 <= self.min_alignment_score <= 1.0:
            raise ConfigError(
                f"min_alignment_score must be in [0, 1], got {self.min_alignment_score}"
            )
        if not (math.isfinite(self.card_aspect_ratio) and self.card_aspect_ratio > 0):
            raise ConfigError(f"card_aspect_ratio must be positive, got {self.card_aspect_ratio}")
        if not self.aspect_tolerance > 0:
            raise ConfigError(f"aspect_tolerance must be positive, got {self.aspect_tolerance}")
        if not 0.0 <= self.crop_margin < 0.5:
            raise ConfigError(f"crop_margin must be in [0, 0.5), got {self.crop_margin}")
        if self.output_width <= 0:
            raise ConfigError(f"output_width must be positive, got {self.output_width}")


class _ConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_size: int = Field(default=640, gt=0)
    confidence_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    min_consecutive_detections: int = Field(default=3, ge=1)
    min_alignment_score: float = Field(default=0.5, ge=0.0, le=1.0)
    card_aspect_ratio: float = Field(default=CARD_ASPECT_RATIO, gt=0.0)
    aspect_tolerance: float = Field(default=ASPECT_TOLERANCE, gt=0.0)
    crop_margin: float = Field(default=0.05, ge=0.0, lt=0.5)
    output_width: int = Field(default=640, gt=0)


def config_from_mapping(data: dict[str, Any]) -> CaptureConfig:
    """Validate a plain mapping and build a `CaptureConfig`.

    Raises:
        ConfigError: On unknown keys or out-of-range values.
    """
    try:
        parsed = _ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid capture config: {e}") from e
    return CaptureConfig(**parsed.model_dump())


def load_config(path: Path) -> CaptureConfig:
    """Load a `CaptureConfig` from a YAML file.

    The file holds a flat mapping of `CaptureConfig` fields; a top-level
    ``capture:`` section is also accepted. Missing keys keep their defaults.
    An empty file yields the default configuration.

    Raises:
        ConfigError: If the file is not a mapping or fails validation.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if raw is None:
        return CaptureConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    if set(raw) == {"capture"}:
        raw = raw["capture"] or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"'capture' section must be a mapping: {path}")
    return config_from_mapping(raw)
