"""Frame change detection and analysis throttling.

Cheap local checks that avoid unnecessary AI calls when the screen
hasn't changed or frames arrive faster than analysis should run.
"""

from screenguide.vision.differ import FrameDiff, diff_frames
from screenguide.vision.throttle import ThrottleDecision, ThrottleGate, ThrottleVerdict

__all__ = ["FrameDiff", "diff_frames", "ThrottleDecision", "ThrottleGate", "ThrottleVerdict"]
