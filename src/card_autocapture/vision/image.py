"""Pixel-side adapters: letterboxing for the detector and card extraction."""

from __future__ import annotations

import base64
import io
from pathlib import Path

import numpy as np
from PIL import Image

from card_autocapture.vision.alignment import CARD_ASPECT_RATIO
from card_autocapture.vision.geometry import compute_frame_geometry, scaled_size
from card_autocapture.vision.types import CropRectangle, FrameGeometry


def read_image(path: Path) -> Image.Image:
    """Read an image from disk and convert it to RGB."""
    return Image.open(path).convert("RGB")


def letterbox(img: Image.Image, input_size: int = 640) -> tuple[np.ndarray, FrameGeometry]:
    """Resize `img` to fit a black square of side `input_size`.

    Returns:
        (tensor, geometry) where tensor is float32 ``[1, S, S, 3]`` in [0, 1]
        and geometry describes the transform for mapping detections back.
    """
    w, h = img.size
    geometry = compute_frame_geometry(w, h, input_size)
    sw, sh = scaled_size(geometry)
    resized = img.convert("RGB").resize((sw, sh), Image.Resampling.BILINEAR)
    canvas = Image.new("RGB", (input_size, input_size), color=(0, 0, 0))
    canvas.paste(resized, (geometry.left_padding, geometry.top_padding))
    arr = np.asarray(canvas, dtype=np.float32) / 255.0
    return arr[np.newaxis, ...], geometry


def extract_card(
    img: Image.Image,
    crop: CropRectangle,
    *,
    output_width: int = 640,
    aspect_ratio: float = CARD_ASPECT_RATIO,
) -> Image.Image:
    """Copy the crop area out of `img` and resize it to a card-shaped image."""
    region = img.crop(crop.as_pil_box())
    output_height = max(1, round(output_width / aspect_ratio))
    return region.resize((output_width, output_height), Image.Resampling.BILINEAR)


def img_to_jpeg_bytes(img: Image.Image, quality: int = 95) -> bytes:
    """Encode an image as JPEG bytes."""
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def img_to_data_url(img: Image.Image, quality: int = 95) -> str:
    """Encode an image as a ``data:image/jpeg;base64,...`` URL."""
    b64 = base64.b64encode(img_to_jpeg_bytes(img, quality=quality)).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"
