"""Shared fixtures: synthetic MediaPipe-33 pose frames."""

from typing import Dict, Optional, Tuple

import numpy as np
import pytest

from ironeye.cv.pose import Keypoint, PoseFrame, MediaPipeLandmark as L, NUM_LANDMARKS
from ironeye.cv.phase_decoder import PHASES

# Upright athlete, arms hanging, facing the camera (y grows downward)
STANDING: Dict[int, Tuple[float, float]] = {
    L.NOSE: (0.50, 0.15),
    L.LEFT_SHOULDER: (0.45, 0.30), L.RIGHT_SHOULDER: (0.55, 0.30),
    L.LEFT_ELBOW: (0.44, 0.45), L.RIGHT_ELBOW: (0.56, 0.45),
    L.LEFT_WRIST: (0.44, 0.58), L.RIGHT_WRIST: (0.56, 0.58),
    L.LEFT_HIP: (0.47, 0.55), L.RIGHT_HIP: (0.53, 0.55),
    L.LEFT_KNEE: (0.47, 0.72), L.RIGHT_KNEE: (0.53, 0.72),
    L.LEFT_ANKLE: (0.47, 0.90), L.RIGHT_ANKLE: (0.53, 0.90),
}

# Hinged over the bell, right hand on the handle
SETUP_RIGHT: Dict[int, Tuple[float, float]] = {
    **STANDING,
    L.NOSE: (0.62, 0.48),
    L.LEFT_SHOULDER: (0.58, 0.50), L.RIGHT_SHOULDER: (0.60, 0.50),
    L.LEFT_ELBOW: (0.57, 0.58), L.RIGHT_ELBOW: (0.60, 0.68),
    L.LEFT_WRIST: (0.56, 0.62), L.RIGHT_WRIST: (0.60, 0.86),
    L.LEFT_HIP: (0.45, 0.55), L.RIGHT_HIP: (0.47, 0.55),
}

# Same hinge, left hand on the handle
SETUP_LEFT: Dict[int, Tuple[float, float]] = {
    **SETUP_RIGHT,
    L.LEFT_WRIST: (0.47, 0.87),
    L.RIGHT_WRIST: (0.60, 0.62),
}

RIGHT_SIDE = (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST,
              L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE)

# Right arm locked out overhead
OVERHEAD_RIGHT: Dict[int, Tuple[float, float]] = {
    **STANDING,
    L.RIGHT_ELBOW: (0.57, 0.18), L.RIGHT_WRIST: (0.58, 0.05),
}


def make_frame(
    timestamp: float,
    positions: Optional[Dict[int, Tuple[float, float]]] = None,
    visibility: float = 0.9,
    overrides: Optional[Dict[int, Keypoint]] = None,
    frame_number: int = 0,
) -> PoseFrame:
    """Build a full 33-landmark frame; unspecified landmarks sit near the head."""
    positions = positions or STANDING
    landmarks = []
    for i in range(NUM_LANDMARKS):
        x, y = positions.get(i, (0.50, 0.14))
        landmarks.append(Keypoint(x=x, y=y, z=0.0, visibility=visibility))
    for i, kp in (overrides or {}).items():
        landmarks[i] = kp
    return PoseFrame(timestamp=timestamp, landmarks=landmarks, frame_number=frame_number)


def scores_for(phase, steps: int, strength: float = 10.0) -> np.ndarray:
    """Logit rows that strongly favour one phase."""
    rows = np.zeros((steps, len(PHASES)))
    rows[:, phase.index] = strength
    return rows


@pytest.fixture
def standing_frame():
    return make_frame(0.0, STANDING)


@pytest.fixture
def setup_frame():
    return make_frame(0.0, SETUP_RIGHT)
