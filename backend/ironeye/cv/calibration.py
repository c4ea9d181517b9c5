"""
"Subject as ruler" calibration.

One fully-visible standing frame plus the user's real height gives the
scale between normalized screen units and meters:

    span      = |avg(ankle_y) - nose_y|        (normalized units)
    full_body = span / BODY_PROPORTION         (nose-to-ankle ~ 90% of height)
    scale     = full_body / height_m           (units per meter)

BODY_PROPORTION is a rough anthropometric heuristic that has not been
validated against ground truth. Keep it tunable.
"""

import time
from dataclasses import dataclass
from typing import Optional
from enum import Enum
import logging

from ironeye.cv.pose import PoseFrame, MediaPipeLandmark

logger = logging.getLogger(__name__)


class CalibrationQuality(Enum):
    """Quality tier of a calibration capture."""
    GOOD = "good"
    OK = "ok"
    NONE = "none"


@dataclass(frozen=True)
class CalibrationProfile:
    """Locked calibration for a session."""
    height_m: float
    units_per_meter: float  # Always > 0
    quality: CalibrationQuality
    locked_at: float  # Wall-clock seconds

    def to_meters(self, normalized_units: float) -> float:
        """Convert a normalized screen distance to meters."""
        return normalized_units / self.units_per_meter


class CalibrationEstimator:
    """Derives and holds the session's CalibrationProfile."""

    TOP = MediaPipeLandmark.NOSE
    BOTTOM = (MediaPipeLandmark.LEFT_ANKLE, MediaPipeLandmark.RIGHT_ANKLE)

    MIN_CONFIDENCE = 0.5
    BODY_PROPORTION = 0.90
    GOOD_CONFIDENCE = 0.8
    MIN_SPAN = 0.05  # Below this the subject is too small or lying down

    def __init__(
        self,
        min_confidence: float = MIN_CONFIDENCE,
        body_proportion: float = BODY_PROPORTION,
        good_confidence: float = GOOD_CONFIDENCE
    ):
        if not 0.0 < body_proportion <= 1.0:
            raise ValueError(f"body_proportion must be in (0, 1], got {body_proportion}")
        self.min_confidence = min_confidence
        self.body_proportion = body_proportion
        self.good_confidence = good_confidence
        self.profile: Optional[CalibrationProfile] = None

    @property
    def is_calibrated(self) -> bool:
        return self.profile is not None

    @property
    def quality(self) -> CalibrationQuality:
        return self.profile.quality if self.profile else CalibrationQuality.NONE

    def calibrate(self, frame: PoseFrame, height_m: float) -> Optional[CalibrationProfile]:
        """
        Calibrate from a single frame.

        Args:
            frame: Frame with the user standing fully in view
            height_m: User's real height in meters

        Returns:
            The new profile, or None if the frame was rejected (prior profile kept)
        """
        if height_m <= 0:
            raise ValueError(f"height_m must be positive, got {height_m}")

        required = (self.TOP,) + self.BOTTOM
        if frame.min_visibility(required) < self.min_confidence:
            logger.warning("Calibration rejected: head and both ankles must be clearly visible")
            return None

        nose = frame.get(self.TOP)
        ankle_y = sum(frame.get(i).y for i in self.BOTTOM) / len(self.BOTTOM)
        span = abs(ankle_y - nose.y)
        if span < self.MIN_SPAN:
            logger.warning(f"Calibration rejected: body span {span:.3f} too small")
            return None

        full_body_units = span / self.body_proportion
        units_per_meter = full_body_units / height_m

        confidence = frame.overall_confidence
        quality = CalibrationQuality.GOOD if confidence > self.good_confidence else CalibrationQuality.OK

        self.profile = CalibrationProfile(
            height_m=height_m,
            units_per_meter=units_per_meter,
            quality=quality,
            locked_at=time.time()
        )
        logger.info(f"Calibration locked: {units_per_meter:.4f} units/m "
                    f"(height={height_m:.2f}m, quality={quality.value})")
        return self.profile

    def reset(self):
        self.profile = None
