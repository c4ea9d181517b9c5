"""
Pose data structures shared by the tracking engine.

Frames arrive from an external MediaPipe Pose source: 33 landmarks with
normalized image coordinates (x right, y DOWN, both 0-1), a relative depth
and a visibility score. Timestamps are in seconds.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum, IntEnum


class MediaPipeLandmark(IntEnum):
    """MediaPipe Pose landmark indices for quick reference."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = 33


class Side(Enum):
    """Body side holding the kettlebell."""
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class LimbIndices:
    """Landmark indices of one body side."""
    shoulder: int
    elbow: int
    wrist: int
    hip: int
    knee: int
    ankle: int


SIDE_LANDMARKS: Dict[Side, LimbIndices] = {
    Side.LEFT: LimbIndices(
        shoulder=MediaPipeLandmark.LEFT_SHOULDER,
        elbow=MediaPipeLandmark.LEFT_ELBOW,
        wrist=MediaPipeLandmark.LEFT_WRIST,
        hip=MediaPipeLandmark.LEFT_HIP,
        knee=MediaPipeLandmark.LEFT_KNEE,
        ankle=MediaPipeLandmark.LEFT_ANKLE,
    ),
    Side.RIGHT: LimbIndices(
        shoulder=MediaPipeLandmark.RIGHT_SHOULDER,
        elbow=MediaPipeLandmark.RIGHT_ELBOW,
        wrist=MediaPipeLandmark.RIGHT_WRIST,
        hip=MediaPipeLandmark.RIGHT_HIP,
        knee=MediaPipeLandmark.RIGHT_KNEE,
        ankle=MediaPipeLandmark.RIGHT_ANKLE,
    ),
}


@dataclass(frozen=True)
class Keypoint:
    """Single keypoint with 3D position and visibility."""
    x: float  # Normalized x coordinate (0-1)
    y: float  # Normalized y coordinate (0-1), grows downward
    z: float = 0.0  # Depth relative to hips
    visibility: float = 0.0  # Confidence score (0-1)

    def to_array(self) -> np.ndarray:
        """Convert to numpy array [x, y]."""
        return np.array([self.x, self.y])


@dataclass
class PoseFrame:
    """
    Pose estimation result for a single frame.

    Immutable by convention: the smoother builds a new frame instead of
    editing this one.
    """
    timestamp: float
    landmarks: List[Keypoint] = field(default_factory=list)
    frame_number: int = 0

    @classmethod
    def from_mediapipe(
        cls,
        pose_landmarks,
        timestamp: float,
        frame_number: int = 0,
    ) -> "PoseFrame":
        """Create a PoseFrame from a MediaPipe landmark list (Solutions or Tasks API)."""
        if not pose_landmarks:
            return cls(timestamp=timestamp, frame_number=frame_number)

        # Solutions API wraps the list in a NormalizedLandmarkList
        landmark_list = getattr(pose_landmarks, "landmark", pose_landmarks)

        landmarks = [
            Keypoint(
                x=float(lm.x),
                y=float(lm.y),
                z=float(getattr(lm, "z", 0.0)),
                visibility=float(getattr(lm, "visibility", 0.0) or 0.0),
            )
            for lm in landmark_list
        ]
        return cls(timestamp=timestamp, landmarks=landmarks, frame_number=frame_number)

    @property
    def is_valid(self) -> bool:
        """True if a full skeleton was detected."""
        return len(self.landmarks) >= NUM_LANDMARKS

    @property
    def overall_confidence(self) -> float:
        """Mean landmark visibility (0 when nothing was detected)."""
        if not self.landmarks:
            return 0.0
        return float(np.mean([kp.visibility for kp in self.landmarks]))

    def get(self, index: int) -> Optional[Keypoint]:
        """Safely get landmark by index."""
        if 0 <= index < len(self.landmarks):
            return self.landmarks[index]
        return None

    def min_visibility(self, indices) -> float:
        """Lowest visibility among the given landmarks (0 if any is missing)."""
        scores = []
        for index in indices:
            kp = self.get(index)
            if kp is None:
                return 0.0
            scores.append(kp.visibility)
        return min(scores) if scores else 0.0
