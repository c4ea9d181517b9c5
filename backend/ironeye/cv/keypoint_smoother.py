"""
Causal keypoint smoothing with the One Euro filter.

SMOOTHING STRATEGY:
1. One independent filter per landmark coordinate (33 landmarks x 3 axes)
2. Adaptive cutoff: fast movement raises the cutoff (less lag), stillness
   lowers it (heavier smoothing)
3. Time travel: a timestamp that moves backward (video loop / seek) resets
   the filter and the raw value passes through

Unlike a Savitzky-Golay window this never looks at future frames, which is
required for live tracking.
"""

import math
from typing import List, Optional
import logging

from ironeye.cv.pose import Keypoint, PoseFrame, NUM_LANDMARKS

logger = logging.getLogger(__name__)


class OneEuroFilter:
    """Adaptive low-pass filter for a single scalar signal."""

    def __init__(
        self,
        min_cutoff: float = 0.5,
        beta: float = 0.05,
        d_cutoff: float = 1.0
    ):
        """
        Initialize filter.

        Args:
            min_cutoff: Cutoff frequency (Hz) when the signal is still
            beta: Cutoff increase per unit/s of signal speed
            d_cutoff: Cutoff frequency (Hz) for the derivative estimate
        """
        self.min_cutoff = min_cutoff
        self.beta = beta
        self.d_cutoff = d_cutoff

        self._x_prev: Optional[float] = None
        self._dx_prev: Optional[float] = None
        self._t_prev: Optional[float] = None

    def reset(self):
        """Forget all history. The next sample passes through unchanged."""
        self._x_prev = None
        self._dx_prev = None
        self._t_prev = None

    def filter(self, timestamp: float, x: float) -> float:
        """
        Filter one sample.

        Args:
            timestamp: Sample time in seconds
            x: Raw value

        Returns:
            Smoothed value
        """
        # Video looped or was seeked
        if self._t_prev is not None and timestamp < self._t_prev:
            self.reset()

        if self._t_prev is None:
            self._x_prev = x
            self._dx_prev = 0.0
            self._t_prev = timestamp
            return x

        te = timestamp - self._t_prev
        if te <= 0.0:
            return self._x_prev

        # Smoothed derivative drives the adaptive cutoff
        a_d = self._smoothing_factor(te, self.d_cutoff)
        dx = (x - self._x_prev) / te
        dx_hat = a_d * dx + (1.0 - a_d) * self._dx_prev

        cutoff = self.min_cutoff + self.beta * abs(dx_hat)
        a = self._smoothing_factor(te, cutoff)
        x_hat = a * x + (1.0 - a) * self._x_prev

        self._x_prev = x_hat
        self._dx_prev = dx_hat
        self._t_prev = timestamp

        return x_hat

    @staticmethod
    def _smoothing_factor(te: float, cutoff: float) -> float:
        r = 2.0 * math.pi * cutoff * te
        return r / (r + 1.0)


class KeypointSmoother:
    """
    Per-landmark One Euro smoothing for whole pose frames.

    Features:
    - One filter per landmark axis, no cross-coordinate coupling
    - Visibility scores are passed through untouched
    - Frames without a skeleton are returned as-is and do not touch filter state
    """

    AXES = 3  # x, y, z

    def __init__(
        self,
        min_cutoff: float = 0.5,
        beta: float = 0.05,
        d_cutoff: float = 1.0,
        num_landmarks: int = NUM_LANDMARKS
    ):
        self.num_landmarks = num_landmarks
        self._filters: List[List[OneEuroFilter]] = [
            [OneEuroFilter(min_cutoff, beta, d_cutoff) for _ in range(self.AXES)]
            for _ in range(num_landmarks)
        ]

    def process(self, frame: PoseFrame) -> PoseFrame:
        """
        Smooth a frame.

        Args:
            frame: Raw pose frame

        Returns:
            New PoseFrame with filtered coordinates
        """
        if not frame.landmarks:
            return frame

        t = frame.timestamp
        smoothed = []
        for i, kp in enumerate(frame.landmarks):
            if i >= self.num_landmarks:
                smoothed.append(kp)
                continue
            fx, fy, fz = self._filters[i]
            smoothed.append(Keypoint(
                x=fx.filter(t, kp.x),
                y=fy.filter(t, kp.y),
                z=fz.filter(t, kp.z),
                visibility=kp.visibility
            ))

        return PoseFrame(
            timestamp=t,
            landmarks=smoothed,
            frame_number=frame.frame_number
        )

    def reset(self):
        """Reset all smoothing history."""
        for axis_filters in self._filters:
            for f in axis_filters:
                f.reset()
        logger.debug("Keypoint smoother reset")
