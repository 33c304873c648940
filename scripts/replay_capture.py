#!/usr/bin/env python3
"""Replay recorded detector outputs through the auto-capture session.

Each ``<stem>.npy`` file under ``--outputs_dir`` holds the raw model output of
one frame, replayed in name order. If a ``<stem>.jpg`` frame sits next to it,
captured cards are extracted from that frame and written to ``--out_root``.
Core logic lives in `card_autocapture.pipelines.autocapture`.
"""

import argparse
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from card_autocapture.capture.config import CaptureConfig, config_from_mapping, load_config
from card_autocapture.detectors.yolo_output import Layout
from card_autocapture.pipelines.autocapture import CaptureSession
from card_autocapture.vision.image import extract_card, read_image

LOG = logging.getLogger(__name__)

DEFAULT_FRAME_W = 1280
DEFAULT_FRAME_H = 720

# Environment overrides, applied on top of --config.
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "CONFIDENCE_THRESHOLD": ("confidence_threshold", float),
    "MIN_CONSECUTIVE_DETECTIONS": ("min_consecutive_detections", int),
    "MIN_ALIGNMENT_SCORE": ("min_alignment_score", float),
    "INPUT_SIZE": ("input_size", int),
    "CROP_MARGIN": ("crop_margin", float),
}


def _build_config(config_path: str | None) -> CaptureConfig:
    base = load_config(Path(config_path)) if config_path else CaptureConfig()
    values: dict[str, Any] = asdict(base)
    for env_name, (key, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is not None:
            values[key] = cast(raw)
    return config_from_mapping(values)


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--outputs_dir", type=str, required=True)
    ap.add_argument("--out_root", type=str, default="outputs/replay")
    ap.add_argument("--config", type=str, default=None)
    ap.add_argument("--frame_w", type=int, default=DEFAULT_FRAME_W)
    ap.add_argument("--frame_h", type=int, default=DEFAULT_FRAME_H)
    ap.add_argument("--layout", choices=[la.value for la in Layout], default=None)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

    outputs_dir = Path(args.outputs_dir).expanduser().resolve()
    if not outputs_dir.is_dir():
        raise SystemExit(f"--outputs_dir is not a directory: {outputs_dir}")
    frames = sorted(outputs_dir.glob("*.npy"))
    if not frames:
        raise SystemExit(f"No .npy outputs found under: {outputs_dir}")

    out_root = Path(args.out_root).expanduser().resolve()
    out_root.mkdir(parents=True, exist_ok=True)

    session = CaptureSession(
        config=_build_config(args.config),
        layout=Layout(args.layout) if args.layout else None,
    )
    session.enable_auto_capture()

    ticks: list[dict[str, object]] = []
    captures = 0
    for npy in frames:
        result = session.process_frame(np.load(npy), args.frame_w, args.frame_h)
        tick: dict[str, object] = {
            "frame": npy.name,
            "detections": len(result.detections),
            "status": result.status.message,
            "kind": result.status.kind.value,
        }
        if result.crop is not None:
            captures += 1
            tick["crop"] = {k: float(v) for k, v in asdict(result.crop).items()}
            frame_img = npy.with_suffix(".jpg")
            if frame_img.is_file():
                card = extract_card(
                    read_image(frame_img),
                    result.crop,
                    output_width=session.config.output_width,
                    aspect_ratio=session.config.card_aspect_ratio,
                )
                card_path = out_root / f"{npy.stem}.card.jpg"
                card.save(card_path, quality=95)
                tick["card"] = str(card_path)
        ticks.append(tick)

    dumped = yaml.safe_dump({"ticks": ticks, "captures": captures}, sort_keys=False)
    (out_root / "summary.yaml").write_text(dumped or "", encoding="utf-8")
    LOG.info("Replayed %d frames, %d captures", len(frames), captures)
    return 0 if captures else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
