"""
Detection box deduplication via greedy non-maximum suppression (NMS).

Boxes are axis-aligned rectangles with a top-left origin and an extent.
Overlap is measured with Intersection-over-Union (IoU). Deduplication
keeps the highest-scoring box of every overlapping cluster and drops the
rest.

Suppression runs in two passes: a vectorized float64 pairwise IoU matrix,
then a sequential greedy resolve over that matrix. The result is identical
to comparing each candidate against the already selected boxes one by one,
including tie-breaking.
"""

import os
import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .errors import InvalidInputError

logger = logging.getLogger(__name__)

# Overlaps strictly above this IoU are treated as duplicates.
DEFAULT_IOU_THRESHOLD = float(os.environ.get("NMS_IOU_THRESHOLD", "0.5"))


@dataclass(frozen=True)
class Box:
    """Axis-aligned box: top-left (x, y), extent (w, h), detector score."""

    x: float
    y: float
    w: float
    h: float
    score: float = 0.0

    def __post_init__(self):
        if self.w < 0 or self.h < 0:
            raise InvalidInputError(
                f"Box extents must be non-negative, got w={self.w}, h={self.h}"
            )

    @property
    def x2(self) -> float:
        return self.x + self.w

    @property
    def y2(self) -> float:
        return self.y + self.h

    @property
    def area(self) -> float:
        return float(self.w) * float(self.h)


def compute_iou(a: Box, b: Box) -> float:
    """
    Intersection-over-Union of two boxes.

    The intersection is clamped to non-negative width and height, so
    disjoint and touching boxes give 0. Zero-area boxes (and any pair
    whose union is empty) also give 0 rather than dividing by zero.

    Returns:
        IoU in [0, 1].
    """
    ix1 = max(float(a.x), float(b.x))
    iy1 = max(float(a.y), float(b.y))
    ix2 = min(float(a.x2), float(b.x2))
    iy2 = min(float(a.y2), float(b.y2))

    inter = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)
    union = a.area + b.area - inter
    # Corner arithmetic can push inter a rounding step past union
    return min(1.0, inter / union) if union > 0 else 0.0


def _as_array(boxes: Sequence[Box]) -> np.ndarray:
    """Stack boxes into an (N, 4) float64 array of x, y, w, h."""
    if not boxes:
        return np.zeros((0, 4), dtype=np.float64)
    return np.array([[b.x, b.y, b.w, b.h] for b in boxes], dtype=np.float64)


def pairwise_iou(boxes: Sequence[Box]) -> np.ndarray:
    """
    Compute the symmetric (N, N) IoU matrix for a list of boxes.

    Element-wise arithmetic mirrors compute_iou() step for step in float64,
    so matrix entries are bit-identical to the scalar results.
    """
    arr = _as_array(boxes)
    x1, y1 = arr[:, 0], arr[:, 1]
    x2, y2 = x1 + arr[:, 2], y1 + arr[:, 3]
    areas = arr[:, 2] * arr[:, 3]

    ix1 = np.maximum(x1[:, np.newaxis], x1[np.newaxis, :])
    iy1 = np.maximum(y1[:, np.newaxis], y1[np.newaxis, :])
    ix2 = np.minimum(x2[:, np.newaxis], x2[np.newaxis, :])
    iy2 = np.minimum(y2[:, np.newaxis], y2[np.newaxis, :])

    inter = np.maximum(0.0, ix2 - ix1) * np.maximum(0.0, iy2 - iy1)
    union = areas[:, np.newaxis] + areas[np.newaxis, :] - inter

    iou = np.zeros_like(inter)
    np.divide(inter, union, out=iou, where=union > 0)
    np.minimum(iou, 1.0, out=iou)
    return iou


def deduplicate_boxes(boxes: Sequence[Box],
                      iou_threshold: float = DEFAULT_IOU_THRESHOLD
                      ) -> List[Box]:
    """
    Greedy non-maximum suppression over scored boxes.

    Boxes are visited in descending score order (stable, so equal scores
    keep their input order). A box is kept unless its IoU with any
    already kept box is strictly greater than iou_threshold; an IoU equal
    to the threshold does not suppress.

    The threshold is used literally: above 1 nothing is suppressed, below
    0 every overlap (even IoU 0) suppresses.

    Args:
        boxes: Input boxes. Never modified; may be empty.
        iou_threshold: Overlap above which a lower-scored box is dropped.

    Returns:
        Retained boxes in selection (descending score) order.
    """
    if not boxes:
        return []

    candidates = list(boxes)
    scores = np.array([b.score for b in candidates], dtype=np.float64)
    order = np.argsort(-scores, kind="stable")

    iou = pairwise_iou(candidates)

    selected = []
    for idx in order:
        if any(iou[idx, kept] > iou_threshold for kept in selected):
            continue
        selected.append(idx)

    logger.debug(f"NMS kept {len(selected)}/{len(candidates)} boxes "
                 f"(iou_threshold={iou_threshold})")
    return [candidates[i] for i in selected]
