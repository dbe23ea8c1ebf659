"""
Image preprocessing for similarity scoring.

Handles dtype normalization and RGB to luma conversion so that every
scorer receives consistent 8-bit grayscale input regardless of how the
source image was decoded.
"""

import logging

import numpy as np

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 format."""
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = np.clip(image_np * 255, 0, 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)
    return image_np


def to_grayscale(rgb, width: int, height: int) -> np.ndarray:
    """
    Convert an interleaved RGB buffer to single-channel 8-bit luma.

    Each pixel becomes Y = round(0.299 R + 0.587 G + 0.114 B), rounding
    halves up, clamped to [0, 255].

    Args:
        rgb: Interleaved R, G, B values as bytes, a flat sequence, or an
             (height, width, 3) uint8 array.
        width: Image width in pixels.
        height: Image height in pixels.

    Returns:
        Flat uint8 array of width * height luma values, row-major.

    Raises:
        InvalidInputError: If the buffer is None, a dimension is not
            positive, or the buffer holds fewer than width * height pixels.
    """
    if rgb is None:
        raise InvalidInputError("RGB buffer is None")
    if width <= 0 or height <= 0:
        raise InvalidInputError(
            f"Image dimensions must be positive, got {width}x{height}"
        )

    if isinstance(rgb, (bytes, bytearray)):
        flat = np.frombuffer(rgb, dtype=np.uint8)
    else:
        flat = np.asarray(rgb).ravel()

    total = width * height
    if flat.size < total * 3:
        raise InvalidInputError(
            f"RGB buffer holds {flat.size} values, need {total * 3} "
            f"for {width}x{height}"
        )

    pixels = flat[:total * 3].astype(np.float64).reshape(total, 3)
    r, g, b = pixels[:, 0], pixels[:, 1], pixels[:, 2]
    luma = np.floor(LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b + 0.5)
    return np.clip(luma, 0, 255).astype(np.uint8)


def as_gray_sample(image_np: np.ndarray) -> np.ndarray:
    """
    Flatten an image into a grayscale sample for SSIM scoring.

    Accepts (h, w) grayscale or (h, w, 3) RGB arrays of any numeric dtype.
    """
    if image_np is None:
        raise InvalidInputError("Image is None")

    image_np = normalize_image(np.asarray(image_np))
    if image_np.ndim == 2:
        return image_np.ravel()
    if image_np.ndim == 3 and image_np.shape[2] == 3:
        h, w = image_np.shape[:2]
        return to_grayscale(image_np, w, h)

    raise InvalidInputError(
        f"Expected (h, w) or (h, w, 3) image, got shape {image_np.shape}"
    )
