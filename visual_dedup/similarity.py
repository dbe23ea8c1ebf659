"""
Global structural similarity (SSIM) between two grayscale samples.

This is the single-window form: means, variances and covariance are taken
over the whole buffer instead of a sliding Gaussian window. It is a coarse
whole-image signal; callers that want localized comparison should tile the
images themselves and score each tile.
"""

import logging

import numpy as np

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# 8-bit luminance range and the standard SSIM stabilizers
DYNAMIC_RANGE = 255.0
K1 = 0.01
K2 = 0.03
C1 = (K1 * DYNAMIC_RANGE) ** 2
C2 = (K2 * DYNAMIC_RANGE) ** 2


def _as_sample(values) -> np.ndarray:
    """Flatten a grayscale sample (list, bytes or ndarray) to float64."""
    if isinstance(values, (bytes, bytearray)):
        return np.frombuffer(values, dtype=np.uint8).astype(np.float64)
    return np.asarray(values, dtype=np.float64).ravel()


def ssim_score(a, b) -> float:
    """
    Compute the global SSIM score of two equal-length grayscale samples.

        SSIM = ((2·μx·μy + C1)·(2·σxy + C2)) / ((μx² + μy² + C1)·(σx² + σy² + C2))

    Variances and covariance use the biased (divide-by-n) estimators.
    Multi-dimensional arrays are compared as flat row-major sequences.

    Args:
        a: First sample of 8-bit intensities.
        b: Second sample, same length as a.

    Returns:
        Similarity score; 1.0 for identical samples. Not clamped. Returns
        0.0 if the denominator is exactly zero.

    Raises:
        InvalidInputError: If either sample is empty or the lengths differ.
    """
    if a is None or b is None:
        raise InvalidInputError("SSIM requires two samples, got None")

    x = _as_sample(a)
    y = _as_sample(b)

    if x.size == 0 or y.size == 0:
        raise InvalidInputError("SSIM requires non-empty samples")
    if x.size != y.size:
        raise InvalidInputError(
            f"SSIM sample length mismatch: {x.size} vs {y.size}"
        )

    mu_x = x.mean()
    mu_y = y.mean()

    dx = x - mu_x
    dy = y - mu_y
    sigma_x2 = np.mean(dx * dx)
    sigma_y2 = np.mean(dy * dy)
    sigma_xy = np.mean(dx * dy)

    num = (2 * mu_x * mu_y + C1) * (2 * sigma_xy + C2)
    den = (mu_x * mu_x + mu_y * mu_y + C1) * (sigma_x2 + sigma_y2 + C2)
    if den == 0.0:
        return 0.0

    score = float(num / den)
    logger.debug(f"SSIM over {x.size} samples: {score:.6f}")
    return score
