"""Frame change detection.

Decides whether two frames differ enough to be worth a new analysis.
The minimum is an absolute count of changed pixels, not a fraction of
the frame, so the same threshold applies to thumbnails and 4K captures.
"""

from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

DEFAULT_PIXEL_THRESHOLD = 0.1
DEFAULT_MIN_DIFF_PIXELS = 1000


@dataclass(frozen=True)
class FrameDiff:
    """Result of comparing two frames."""

    is_different: bool
    diff_pixels: int
    reason: str = "pixels"


def diff_frames(
    prev: np.ndarray | None,
    curr: np.ndarray | None,
    pixel_threshold: float = DEFAULT_PIXEL_THRESHOLD,
    min_diff_pixels: int = DEFAULT_MIN_DIFF_PIXELS,
) -> FrameDiff:
    """Compare two decoded frames.

    Args:
        prev: Previous frame (BGR or grayscale), or None if undecodable.
        curr: Current frame, or None if undecodable.
        pixel_threshold: Per-channel delta on a 0-1 scale above which a
            pixel counts as changed. Tolerates compression noise.
        min_diff_pixels: Changed-pixel count at or above which the frames
            are considered different.

    Returns:
        A FrameDiff. Undecodable inputs and dimension changes are always
        different; diff_pixels is then the larger frame's pixel count
        (or 0 when nothing could be decoded).
    """
    if prev is None or curr is None:
        known = [img.shape[0] * img.shape[1] for img in (prev, curr) if img is not None]
        return FrameDiff(True, max(known, default=0), "decode_failed")

    if prev.shape[:2] != curr.shape[:2]:
        area = max(prev.shape[0] * prev.shape[1], curr.shape[0] * curr.shape[1])
        return FrameDiff(True, area, "dimensions_changed")

    if prev.shape != curr.shape:
        prev, curr = _as_bgr(prev), _as_bgr(curr)

    diff = cv2.absdiff(prev, curr)
    if diff.ndim == 3:
        diff = diff.max(axis=2)
    changed = int(np.count_nonzero(diff > pixel_threshold * 255.0))
    return FrameDiff(changed >= min_diff_pixels, changed)


def _as_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image
