"""
Keypoint and descriptor extraction.

Extraction is a pluggable capability: anything implementing
FeatureExtractor.extract() can feed match_descriptors(). Each extractor
declares the distance metric of the descriptors it produces, so matching
never has to guess it from the array layout.

Two OpenCV-backed extractors are provided:
    OrbExtractor   ORB (Oriented FAST and Rotated BRIEF), 32-byte binary
                   descriptors, Hamming distance
    SiftExtractor  SIFT, 128-float descriptors, Euclidean distance
"""

import os
import abc
import logging

import cv2
import numpy as np

from .errors import InvalidInputError
from .matching import DescriptorMetric, DescriptorSet
from .preprocessing import normalize_image, to_grayscale

logger = logging.getLogger(__name__)

DEFAULT_MAX_FEATURES = int(os.environ.get("FEATURE_MAX_COUNT", "500"))
ORB_FAST_THRESHOLD = int(os.environ.get("ORB_FAST_THRESHOLD", "20"))
ORB_EDGE_THRESHOLD = int(os.environ.get("ORB_EDGE_THRESHOLD", "20"))


def _prepare_gray(image_np: np.ndarray) -> np.ndarray:
    """Validate an input image and reduce it to a 2-D uint8 array."""
    if image_np is None:
        raise InvalidInputError("Image is None")

    image_np = np.asarray(image_np)
    if image_np.size == 0:
        raise InvalidInputError("Image is empty")

    image_np = normalize_image(image_np)
    if image_np.ndim == 2:
        return np.ascontiguousarray(image_np)
    if image_np.ndim == 3 and image_np.shape[2] == 3:
        h, w = image_np.shape[:2]
        return to_grayscale(image_np, w, h).reshape(h, w)

    raise InvalidInputError(
        f"Expected (h, w) or (h, w, 3) image, got shape {image_np.shape}"
    )


class FeatureExtractor(abc.ABC):
    """Produces a DescriptorSet from a grayscale image."""

    metric: DescriptorMetric

    def __init__(self, max_features: int = DEFAULT_MAX_FEATURES):
        if max_features <= 0:
            raise InvalidInputError(
                f"max_features must be positive, got {max_features}"
            )
        self.max_features = max_features

    def extract(self, image_np: np.ndarray) -> DescriptorSet:
        """
        Detect keypoints and compute their descriptors.

        Args:
            image_np: (h, w) grayscale or (h, w, 3) RGB image.

        Returns:
            DescriptorSet tagged with this extractor's metric. Empty when
            no keypoints are found or OpenCV fails.

        Raises:
            InvalidInputError: If the image is None, empty or of an
                unsupported shape.
        """
        gray = _prepare_gray(image_np)
        try:
            keypoints, descriptors = self._detect(gray)
        except cv2.error as e:
            logger.error(f"{type(self).__name__} extraction error: {e}")
            return DescriptorSet.empty(self.metric)

        result = DescriptorSet.from_cv2(keypoints, descriptors, self.metric)
        logger.debug(f"Extracted {len(result)} {type(self).__name__} features")
        return result

    @abc.abstractmethod
    def _detect(self, gray: np.ndarray):
        """Return (keypoints, descriptors) as OpenCV detectAndCompute() does."""


class OrbExtractor(FeatureExtractor):
    """
    ORB features with contrast equalization.

    CLAHE evens out lighting before detection and a light blur suppresses
    pixel noise. If the primary detector finds nothing (flat or tiny
    images) a second pass with more lenient thresholds is tried.
    """

    metric = DescriptorMetric.HAMMING

    def _detect(self, gray: np.ndarray):
        clahe = cv2.createCLAHE(clipLimit=3.0, tileGridSize=(8, 8))
        gray = clahe.apply(gray)
        gray = cv2.GaussianBlur(gray, (3, 3), 0)

        orb = cv2.ORB_create(
            nfeatures=self.max_features,
            scaleFactor=1.2,
            nlevels=8,
            edgeThreshold=ORB_EDGE_THRESHOLD,
            firstLevel=0,
            WTA_K=2,
            patchSize=31,
            fastThreshold=ORB_FAST_THRESHOLD,
        )
        keypoints, descriptors = orb.detectAndCompute(gray, None)

        if descriptors is None:
            logger.warning("Primary ORB extraction found no features, trying fallback")
            orb_fallback = cv2.ORB_create(
                nfeatures=self.max_features,
                scaleFactor=1.1,
                nlevels=10,
                edgeThreshold=10,
                fastThreshold=10,
            )
            keypoints, descriptors = orb_fallback.detectAndCompute(gray, None)

        return keypoints, descriptors


class SiftExtractor(FeatureExtractor):
    """SIFT features; float32 descriptors compared with Euclidean distance."""

    metric = DescriptorMetric.L2

    def _detect(self, gray: np.ndarray):
        sift = cv2.SIFT_create(nfeatures=self.max_features)
        return sift.detectAndCompute(gray, None)
