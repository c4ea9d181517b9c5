"""
Per-frame feature extraction for the phase classifier.

Maps 33 MediaPipe landmarks to the 12 features the snatch CNN was trained
on, plus the bell's real vertical velocity in m/s for the session engine.

FROZEN SCHEMA (model "snatch-v4"), in this order:
    0  elbow_angle         shoulder-elbow-wrist angle / 180
    1  shoulder_angle      hip-shoulder-elbow angle / 180
    2  hip_angle           shoulder-hip-knee angle / 180
    3  knee_angle          hip-knee-ankle angle / 180
    4  elbow_velocity      d(elbow angle)/dt in deg/s / 360
    5  shoulder_velocity   d(shoulder angle)/dt in deg/s / 360
    6  hip_velocity        d(hip angle)/dt in deg/s / 360
    7  knee_velocity       d(knee angle)/dt in deg/s / 360
    8  wrist_y             raw normalized screen y of the active wrist
    9  wrist_velocity_y    upward wrist speed in units/s / 2.0
    10 lean                shoulder-to-hip horizontal offset, mirrored per side
    11 active_side         1.0 = right, 0.0 = left

The normalization constants match the training pipeline. Changing any of
them (or the order) requires retraining the model.
"""

import numpy as np
from dataclasses import dataclass, field, fields, astuple
from typing import Optional, Tuple
import logging

from ironeye.cv.pose import PoseFrame, Keypoint, Side, SIDE_LANDMARKS

logger = logging.getLogger(__name__)

FEATURE_DIM = 12
SCHEMA_VERSION = "snatch-v4"

ANGLE_SCALE = 180.0  # degrees
ANGULAR_VELOCITY_SCALE = 360.0  # deg/s
WRIST_VELOCITY_SCALE = 2.0  # normalized units/s


@dataclass(frozen=True)
class FeatureVector:
    """One classifier input row. Field order IS the model's input order."""
    elbow_angle: float
    shoulder_angle: float
    hip_angle: float
    knee_angle: float
    elbow_velocity: float
    shoulder_velocity: float
    hip_velocity: float
    knee_velocity: float
    wrist_y: float
    wrist_velocity_y: float
    lean: float
    active_side: float

    def to_array(self) -> np.ndarray:
        return np.array(astuple(self), dtype=np.float32)

    @property
    def is_valid(self) -> bool:
        """True if every feature is a finite number."""
        return bool(np.all(np.isfinite(self.to_array())))

    @property
    def velocities(self) -> Tuple[float, ...]:
        return (
            self.elbow_velocity,
            self.shoulder_velocity,
            self.hip_velocity,
            self.knee_velocity,
            self.wrist_velocity_y,
        )


FEATURE_NAMES = tuple(f.name for f in fields(FeatureVector))
assert len(FEATURE_NAMES) == FEATURE_DIM, "FeatureVector no longer matches the model schema"


@dataclass
class FeatureCache:
    """Previous-frame state for one tracked person."""
    timestamp: Optional[float] = None
    angles: Optional[np.ndarray] = None  # elbow, shoulder, hip, knee in degrees
    wrist_y: Optional[float] = None
    side: Optional[Side] = None

    @property
    def is_empty(self) -> bool:
        return self.timestamp is None

    def clear(self):
        self.timestamp = None
        self.angles = None
        self.wrist_y = None
        self.side = None


@dataclass
class FeatureResult:
    """Output of one extraction."""
    vector: FeatureVector
    velocity_mps: float  # Real vertical wrist velocity, upward positive
    confidence: float = 0.0  # Lowest visibility among the landmarks used
    side: Side = Side.RIGHT
    raw_angles: np.ndarray = field(default_factory=lambda: np.zeros(4))


def calculate_angle(point_a: Keypoint, point_b: Keypoint, point_c: Keypoint) -> float:
    """Calculate angle at point_b formed by points a, b, c (degrees, 0-180)."""
    a = point_a.to_array()
    b = point_b.to_array()
    c = point_c.to_array()

    ba = a - b
    bc = c - b

    cos_angle = np.dot(ba, bc) / (np.linalg.norm(ba) * np.linalg.norm(bc) + 1e-8)
    # Float error can push the cosine just outside [-1, 1]
    cos_angle = np.clip(cos_angle, -1.0, 1.0)
    return float(np.degrees(np.arccos(cos_angle)))


class FeatureExtractor:
    """
    Converts pose frames into classifier features.

    The caller owns the FeatureCache so several tracks (or tests) can share
    one extractor without leaking state between them.
    """

    MIN_CONFIDENCE = 0.3
    MAX_FRAME_GAP = 1.0  # seconds
    DEFAULT_SIDE = Side.RIGHT
    DEFAULT_UNITS_PER_METER = 0.30

    def __init__(
        self,
        min_confidence: float = MIN_CONFIDENCE,
        max_frame_gap: float = MAX_FRAME_GAP,
        default_units_per_meter: float = DEFAULT_UNITS_PER_METER
    ):
        if default_units_per_meter <= 0:
            raise ValueError("default_units_per_meter must be positive")
        self.min_confidence = min_confidence
        self.max_frame_gap = max_frame_gap
        self.default_units_per_meter = default_units_per_meter

    def extract(
        self,
        frame: PoseFrame,
        cache: FeatureCache,
        side: Optional[Side] = None,
        units_per_meter: Optional[float] = None
    ) -> Optional[FeatureResult]:
        """
        Extract features for one frame.

        Args:
            frame: (Smoothed) pose frame
            cache: Previous-frame state, updated in place on success
            side: Locked side, or None to use the default side
            units_per_meter: Calibration scale, or None for the default

        Returns:
            FeatureResult, or None if the frame is unusable
        """
        if not frame.is_valid:
            return None

        side = side or self.DEFAULT_SIDE
        idx = SIDE_LANDMARKS[side]
        required = (idx.shoulder, idx.elbow, idx.wrist, idx.hip, idx.knee, idx.ankle)
        confidence = frame.min_visibility(required)
        if confidence < self.min_confidence:
            return None

        shoulder = frame.get(idx.shoulder)
        elbow = frame.get(idx.elbow)
        wrist = frame.get(idx.wrist)
        hip = frame.get(idx.hip)
        knee = frame.get(idx.knee)
        ankle = frame.get(idx.ankle)

        angles = np.array([
            calculate_angle(shoulder, elbow, wrist),
            calculate_angle(hip, shoulder, elbow),
            calculate_angle(shoulder, hip, knee),
            calculate_angle(hip, knee, ankle),
        ])

        # Loop / seek, or the side changed under us
        if cache.timestamp is not None and frame.timestamp < cache.timestamp:
            logger.debug(f"Timestamp regression {cache.timestamp:.3f} -> {frame.timestamp:.3f}, clearing cache")
            cache.clear()
        if cache.side is not None and cache.side != side:
            cache.clear()

        angular_velocity = np.zeros(4)
        wrist_velocity = 0.0  # units/s, upward positive
        if not cache.is_empty:
            dt = frame.timestamp - cache.timestamp
            if 0.0 < dt < self.max_frame_gap:
                angular_velocity = (angles - cache.angles) / dt
                wrist_velocity = -(wrist.y - cache.wrist_y) / dt

        lean = shoulder.x - hip.x
        if side == Side.RIGHT:
            lean = -lean

        vector = FeatureVector(
            elbow_angle=angles[0] / ANGLE_SCALE,
            shoulder_angle=angles[1] / ANGLE_SCALE,
            hip_angle=angles[2] / ANGLE_SCALE,
            knee_angle=angles[3] / ANGLE_SCALE,
            elbow_velocity=angular_velocity[0] / ANGULAR_VELOCITY_SCALE,
            shoulder_velocity=angular_velocity[1] / ANGULAR_VELOCITY_SCALE,
            hip_velocity=angular_velocity[2] / ANGULAR_VELOCITY_SCALE,
            knee_velocity=angular_velocity[3] / ANGULAR_VELOCITY_SCALE,
            wrist_y=wrist.y,
            wrist_velocity_y=wrist_velocity / WRIST_VELOCITY_SCALE,
            lean=lean,
            active_side=1.0 if side == Side.RIGHT else 0.0,
        )
        if not vector.is_valid:
            return None

        scale = units_per_meter if units_per_meter and units_per_meter > 0 else self.default_units_per_meter
        velocity_mps = wrist_velocity / scale

        cache.timestamp = frame.timestamp
        cache.angles = angles
        cache.wrist_y = wrist.y
        cache.side = side

        return FeatureResult(
            vector=vector,
            velocity_mps=velocity_mps,
            confidence=confidence,
            side=side,
            raw_angles=angles
        )
