"""
Brute-force descriptor matching with optional cross-check.

Given two descriptor sets from the same extractor, every query descriptor
(set A) is paired with its nearest neighbor in set B. The distance metric
is declared by the sets themselves: Hamming bit count for packed binary
descriptors (ORB, BRIEF, AKAZE) or Euclidean distance for numeric
descriptors (SIFT, learned features).

With cross-check enabled a pair (i, j) survives only when the two
descriptors are each other's nearest neighbor, which trades recall for
precision.

Ties always resolve to the lowest index, so results are reproducible for
identical inputs.
"""

import os
import enum
import logging
from typing import List, NamedTuple, Sequence

import numpy as np

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

_FALSY = ("0", "false", "no", "off", "")


def _env_flag(name: str, default: str) -> bool:
    """Read a boolean switch from the environment."""
    return os.environ.get(name, default).strip().lower() not in _FALSY


DEFAULT_CROSS_CHECK = _env_flag("MATCH_CROSS_CHECK", "1")

# Upper bound on elements materialized per block of query rows
# (rows x |B| x descriptor width) while building the distance matrix.
BLOCK_ELEMENTS = int(os.environ.get("MATCH_BLOCK_ELEMENTS", "4000000"))

# Bit counts for every byte value
_POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


class DescriptorMetric(enum.Enum):
    """Distance convention of a descriptor encoding."""

    HAMMING = "hamming"
    L2 = "l2"


class Keypoint(NamedTuple):
    """Image location of a feature, with OpenCV scale, orientation and response."""

    x: float
    y: float
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0


class Match(NamedTuple):
    """A claimed correspondence between set A[query_idx] and set B[train_idx]."""

    query_idx: int
    train_idx: int
    distance: float


class DescriptorSet:
    """
    Keypoints of one image with their descriptors and distance metric.

    Descriptors are an (N, D) array, one row per keypoint. HAMMING sets
    must hold packed uint8 bit strings; L2 sets may hold any numeric type.
    An empty set is valid.
    """

    def __init__(self, keypoints: Sequence[Keypoint], descriptors,
                 metric: DescriptorMetric):
        if not isinstance(metric, DescriptorMetric):
            raise InvalidInputError(f"Unknown descriptor metric: {metric!r}")

        keypoints = tuple(keypoints)
        if descriptors is None:
            descriptors = np.zeros((0, 0), dtype=np.uint8)
        descriptors = np.asarray(descriptors)
        if descriptors.size == 0 and descriptors.ndim != 2:
            descriptors = descriptors.reshape(0, 0)

        if descriptors.ndim != 2:
            raise InvalidInputError(
                f"Descriptors must be a 2-D array, got shape {descriptors.shape}"
            )
        if len(keypoints) != descriptors.shape[0]:
            raise InvalidInputError(
                f"{len(keypoints)} keypoints but {descriptors.shape[0]} descriptors"
            )
        if metric is DescriptorMetric.HAMMING and descriptors.size and descriptors.dtype != np.uint8:
            raise InvalidInputError(
                f"Hamming descriptors must be uint8, got {descriptors.dtype}"
            )

        self.keypoints = keypoints
        self.descriptors = descriptors
        self.metric = metric

    @classmethod
    def empty(cls, metric: DescriptorMetric) -> "DescriptorSet":
        return cls((), None, metric)

    @classmethod
    def from_cv2(cls, keypoints, descriptors,
                 metric: DescriptorMetric) -> "DescriptorSet":
        """Build a set from OpenCV detectAndCompute() output."""
        if descriptors is None or len(keypoints) == 0:
            return cls.empty(metric)
        kps = [Keypoint(float(kp.pt[0]), float(kp.pt[1]), float(kp.size),
                        float(kp.angle), float(kp.response))
               for kp in keypoints]
        return cls(kps, descriptors, metric)

    @property
    def width(self) -> int:
        """Descriptor length (bytes for HAMMING, components for L2)."""
        return self.descriptors.shape[1]

    def __len__(self) -> int:
        return len(self.keypoints)

    def __repr__(self) -> str:
        return (f"DescriptorSet(n={len(self)}, width={self.width}, "
                f"metric={self.metric.name})")


def _block_distances(query: np.ndarray, train: np.ndarray,
                     metric: DescriptorMetric) -> np.ndarray:
    """Distances from each query row to each train row, as float64."""
    if metric is DescriptorMetric.HAMMING:
        xor = np.bitwise_xor(query[:, np.newaxis, :], train[np.newaxis, :, :])
        return _POPCOUNT[xor].sum(axis=2, dtype=np.int64).astype(np.float64)

    diff = (query[:, np.newaxis, :].astype(np.float64)
            - train[np.newaxis, :, :].astype(np.float64))
    return np.sqrt((diff * diff).sum(axis=2))


def _check_compatible(set_a: DescriptorSet, set_b: DescriptorSet):
    if set_a.metric is not set_b.metric:
        raise InvalidInputError(
            f"Descriptor metric mismatch: {set_a.metric.name} vs {set_b.metric.name}"
        )
    if set_a.width != set_b.width:
        raise InvalidInputError(
            f"Descriptor width mismatch: {set_a.width} vs {set_b.width}"
        )


def compute_distance_matrix(set_a: DescriptorSet,
                            set_b: DescriptorSet) -> np.ndarray:
    """
    Compute the full (|A|, |B|) distance matrix under the sets' metric.

    Query rows are processed in blocks so that no intermediate array
    exceeds BLOCK_ELEMENTS; blocking does not change any value.

    Raises:
        InvalidInputError: If the sets use different metrics or widths.
    """
    if len(set_a) == 0 or len(set_b) == 0:
        return np.zeros((len(set_a), len(set_b)), dtype=np.float64)

    _check_compatible(set_a, set_b)

    n_a, n_b = len(set_a), len(set_b)
    rows_per_block = max(1, BLOCK_ELEMENTS // max(1, n_b * set_a.width))

    distances = np.empty((n_a, n_b), dtype=np.float64)
    for start in range(0, n_a, rows_per_block):
        stop = min(n_a, start + rows_per_block)
        distances[start:stop] = _block_distances(
            set_a.descriptors[start:stop], set_b.descriptors, set_a.metric
        )
    return distances


def match_descriptors(set_a: DescriptorSet,
                      set_b: DescriptorSet,
                      cross_check: bool = DEFAULT_CROSS_CHECK) -> List[Match]:
    """
    Match every descriptor of set_a to its nearest neighbor in set_b.

    Args:
        set_a: Query descriptors.
        set_b: Train descriptors (same metric and width as set_a).
        cross_check: Keep only mutual nearest neighbors.

    Returns:
        Matches ordered by ascending query_idx. At most one match per
        query descriptor; empty if either set is empty.

    Raises:
        InvalidInputError: If the sets use different metrics or widths.
    """
    if len(set_a) == 0 or len(set_b) == 0:
        logger.debug("Empty descriptor set, no matches")
        return []

    distances = compute_distance_matrix(set_a, set_b)

    # argmin returns the first minimum, i.e. the lowest index on ties
    best_train = np.argmin(distances, axis=1)
    best_query = np.argmin(distances, axis=0) if cross_check else None

    matches = []
    for i, j in enumerate(best_train):
        if cross_check and best_query[j] != i:
            continue
        matches.append(Match(i, int(j), float(distances[i, j])))

    logger.debug(f"Matched {len(matches)}/{len(set_a)} descriptors "
                 f"({set_a.metric.name}, cross_check={cross_check})")
    return matches
