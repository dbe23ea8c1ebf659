"""Shared test fixtures for visual dedup tests."""

import numpy as np
import cv2
import pytest

from visual_dedup.boxes import Box


@pytest.fixture
def overlapping_boxes():
    """Two heavily overlapping boxes plus one far away."""
    return [
        Box(0, 0, 10, 10, score=0.9),
        Box(1, 1, 10, 10, score=0.8),
        Box(20, 20, 10, 10, score=0.7),
    ]


@pytest.fixture
def detection_cluster():
    """Several clusters of jittered detections with distinct scores."""
    rng = np.random.RandomState(7)
    boxes = []
    for cx, cy in [(10, 10), (60, 15), (30, 70), (80, 80)]:
        for _ in range(6):
            dx, dy = rng.uniform(-3, 3, size=2)
            w, h = rng.uniform(15, 25, size=2)
            boxes.append(Box(cx + dx, cy + dy, w, h, score=float(rng.uniform(0, 1))))
    return boxes


@pytest.fixture
def gradient_gray():
    """Generate a 64x64 horizontal gradient."""
    row = np.linspace(0, 255, 64).astype(np.uint8)
    return np.tile(row, (64, 1))


@pytest.fixture
def textured_gray():
    """Generate a 200x200 grayscale image with random blobs (good for ORB)."""
    rng = np.random.RandomState(3)
    img = np.full((200, 200), 200, dtype=np.uint8)
    for _ in range(40):
        x, y = rng.randint(10, 190, size=2)
        r = int(rng.randint(3, 12))
        cv2.circle(img, (int(x), int(y)), r, int(rng.randint(0, 120)), -1)
    for _ in range(15):
        x1, y1, x2, y2 = rng.randint(0, 200, size=4)
        cv2.line(img, (int(x1), int(y1)), (int(x2), int(y2)), 30, 2)
    return img


@pytest.fixture
def flat_gray():
    """Generate a featureless 100x100 mid-gray image."""
    return np.full((100, 100), 128, dtype=np.uint8)


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise RGB image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)
