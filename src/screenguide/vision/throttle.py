"""Per-session analysis rate limiting.

Combines a minimum interval since the last analyzed frame with the frame
differ. Throttle state only moves forward when an analysis succeeds, so
bursts of unchanged frames never keep resetting the timer.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

import numpy as np

from screenguide.vision.differ import (
    DEFAULT_MIN_DIFF_PIXELS,
    DEFAULT_PIXEL_THRESHOLD,
    FrameDiff,
    diff_frames,
)

if TYPE_CHECKING:
    from screenguide.session.state import SessionState

logger = logging.getLogger(__name__)


class ThrottleVerdict(str, enum.Enum):
    ANALYZE = "analyze"
    SKIP_INTERVAL = "skip_interval"  # Inside the minimum interval window
    SKIP_UNCHANGED = "skip_unchanged"  # Differ found too few changed pixels


@dataclass(frozen=True)
class ThrottleDecision:
    verdict: ThrottleVerdict
    reason: str
    diff: FrameDiff | None = None

    @property
    def should_analyze(self) -> bool:
        return self.verdict is ThrottleVerdict.ANALYZE


class ThrottleGate:
    """Decides per incoming frame whether analysis should run now."""

    def __init__(
        self,
        min_interval_ms: int = 1000,
        pixel_threshold: float = DEFAULT_PIXEL_THRESHOLD,
        min_diff_pixels: int = DEFAULT_MIN_DIFF_PIXELS,
    ) -> None:
        self._min_interval = timedelta(milliseconds=min_interval_ms)
        self._pixel_threshold = pixel_threshold
        self._min_diff_pixels = min_diff_pixels

    def decide(self, session: SessionState, pixels: np.ndarray | None, now: datetime) -> ThrottleDecision:
        """Evaluate one incoming frame against the session's last analyzed frame.

        Args:
            session: The session whose throttle state is consulted (not mutated).
            pixels: The decoded incoming frame, or None if it could not be decoded.
            now: Arrival time of the frame.
        """
        if not session.has_analyzed_frame:
            return ThrottleDecision(ThrottleVerdict.ANALYZE, "first frame")

        elapsed = now - session.last_frame_at
        if elapsed < self._min_interval:
            logger.debug(
                "Session %s: frame %.0fms after last analysis, skipping",
                session.session_id, elapsed.total_seconds() * 1000,
            )
            return ThrottleDecision(ThrottleVerdict.SKIP_INTERVAL, "within minimum interval")

        diff = diff_frames(
            session.last_frame_image,
            pixels,
            pixel_threshold=self._pixel_threshold,
            min_diff_pixels=self._min_diff_pixels,
        )
        logger.debug(
            "Session %s: %d pixels changed (%s)", session.session_id, diff.diff_pixels, diff.reason
        )
        if diff.is_different:
            return ThrottleDecision(ThrottleVerdict.ANALYZE, diff.reason, diff)
        return ThrottleDecision(ThrottleVerdict.SKIP_UNCHANGED, "not enough difference", diff)

    @staticmethod
    def record(session: SessionState, pixels: np.ndarray | None, at: datetime) -> None:
        """Mark ``pixels`` as the session's most recently analyzed frame."""
        session.last_frame_image = pixels
        session.last_frame_at = at
