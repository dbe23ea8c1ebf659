"""
visual_dedup: visual duplicate and similarity scoring.

Three independent signals for deciding whether two images (or two
regions) show the same content: IoU-based non-maximum suppression of
detection boxes, a global SSIM score between grayscale buffers, and
brute-force descriptor matching with optional cross-check.

Modules:
    boxes          Box type, IoU and greedy NMS deduplication
    similarity     Global (single-window) SSIM score
    matching       Descriptor sets and nearest-neighbor matching
    features       ORB / SIFT keypoint extraction (pluggable)
    preprocessing  Image normalization and RGB to luma conversion
    errors         InvalidInputError
"""

__version__ = "1.0.0"
