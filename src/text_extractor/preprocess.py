# -*- coding: utf-8 -*-
"""
Image enhancement applied before an image is handed to the OCR engine.

The chain is fixed: contrast/brightness, noise reduction, luminance sharpening.
A stage that fails is skipped (its input moves on unchanged); if the result
cannot be rendered back to an RGB raster the original image is returned.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageFilter

from .ocr_engine import ImageProcessingFailedError, InvalidImageError

logger = logging.getLogger(__name__)

CONTRAST_GAIN = 1.1
BRIGHTNESS_OFFSET = 0.1
NOISE_LEVEL = 0.02
NOISE_SHARPNESS = 0.4
LUMINANCE_SHARPNESS = 0.5
# Radius (pixels) of the luminance unsharp mask.
SHARPEN_RADIUS = 1.69

Stage = Callable[[Image.Image], Optional[Image.Image]]


def _as_float_rgb(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0


def _to_image(values: np.ndarray) -> Image.Image:
    return Image.fromarray(np.clip(values * 255.0 + 0.5, 0, 255).astype(np.uint8), "RGB")


def enhance_contrast(image: Image.Image) -> Optional[Image.Image]:
    """Add the brightness offset, then scale contrast around mid-grey."""
    values = _as_float_rgb(image)
    values = (values + BRIGHTNESS_OFFSET - 0.5) * CONTRAST_GAIN + 0.5
    return _to_image(np.clip(values, 0.0, 1.0))


def reduce_noise(image: Image.Image) -> Optional[Image.Image]:
    """Non-local-means denoise, then put back part of the detail it removed."""
    rgb = np.asarray(image.convert("RGB"), dtype=np.uint8)
    strength = NOISE_LEVEL * 255.0
    denoised = cv2.fastNlMeansDenoisingColored(rgb, None, strength, strength, 7, 21)
    smooth = denoised.astype(np.float32)
    blurred = cv2.GaussianBlur(smooth, (0, 0), 1.0)
    restored = smooth + NOISE_SHARPNESS * (smooth - blurred)
    return Image.fromarray(np.clip(restored + 0.5, 0, 255).astype(np.uint8), "RGB")


def sharpen_luminance(image: Image.Image) -> Optional[Image.Image]:
    """Unsharp-mask the Y channel only so colours are not fringed."""
    y, cb, cr = image.convert("YCbCr").split()
    y = y.filter(
        ImageFilter.UnsharpMask(radius=SHARPEN_RADIUS, percent=int(LUMINANCE_SHARPNESS * 100), threshold=0)
    )
    return Image.merge("YCbCr", (y, cb, cr)).convert("RGB")


STAGES: List[Tuple[str, Stage]] = [
    ("contrast", enhance_contrast),
    ("noise reduction", reduce_noise),
    ("sharpen", sharpen_luminance),
]


def _run_stage(name: str, stage: Stage, image: Image.Image) -> Image.Image:
    try:
        output = stage(image)
    except (cv2.error, ValueError, TypeError, OSError) as exc:
        logger.warning("Preprocessing stage '%s' failed, skipping: %s", name, exc)
        return image
    if output is None:
        logger.warning("Preprocessing stage '%s' produced no image, skipping", name)
        return image
    return output


def ensure_pixels(image: Image.Image) -> None:
    width, height = image.size
    if width <= 0 or height <= 0:
        raise ImageProcessingFailedError(f"Image has no pixels ({width}x{height})")


def preprocess_image(image: Image.Image, stages: Optional[List[Tuple[str, Stage]]] = None) -> Image.Image:
    """Run the enhancement chain and return an RGB image.

    Raises ImageProcessingFailedError when the input has no pixels.
    """
    ensure_pixels(image)

    processed = image
    for name, stage in stages if stages is not None else STAGES:
        processed = _run_stage(name, stage, processed)

    try:
        rendered = processed.convert("RGB")
        rendered.load()
    except (ValueError, OSError) as exc:
        logger.warning("Could not render preprocessed image, using original: %s", exc)
        return image
    return rendered


def to_pixel_buffer(image: Image.Image) -> np.ndarray:
    """Convert to the contiguous RGB uint8 array the engines expect."""
    try:
        pixels = np.ascontiguousarray(np.asarray(image.convert("RGB"), dtype=np.uint8))
    except (ValueError, OSError, TypeError) as exc:
        raise InvalidImageError(f"Could not read image pixels: {exc}") from exc
    if pixels.ndim != 3 or pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise InvalidImageError(f"Unexpected pixel buffer shape {pixels.shape}")
    return pixels
