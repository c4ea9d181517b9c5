"""
Rolling-window wrapper around the external phase model.

The model itself (ONNX / TFLite / anything else) is a black box: a callable
taking a (T, F) float32 window of feature rows and returning per-frame
class scores of shape (T, C), optionally with a leading batch axis of 1.

Inference never queues: if the previous call has not returned yet, the new
request is dropped and the frame is simply not classified.
"""

import threading
import numpy as np
from collections import deque
from typing import Callable, Deque, Optional
import logging

from ironeye.cv.features import FeatureVector, FEATURE_DIM

logger = logging.getLogger(__name__)

PhaseModel = Callable[[np.ndarray], np.ndarray]


class PhaseClassifier:
    """Buffers feature rows and runs the model once the window is full."""

    def __init__(
        self,
        model: PhaseModel,
        window_frames: int = 36,
        feature_dim: int = FEATURE_DIM
    ):
        if window_frames < 1:
            raise ValueError(f"window_frames must be >= 1, got {window_frames}")
        self.model = model
        self.window_frames = window_frames
        self.feature_dim = feature_dim
        self._buffer: Deque[np.ndarray] = deque(maxlen=window_frames)
        self._busy = threading.Lock()
        self.dropped_frames = 0

    @property
    def is_ready(self) -> bool:
        """True once a full window has been collected."""
        return len(self._buffer) >= self.window_frames

    def add_frame(self, features):
        """Append one feature row (FeatureVector or array-like)."""
        row = features.to_array() if isinstance(features, FeatureVector) else np.asarray(features, dtype=np.float32)
        if row.shape != (self.feature_dim,):
            raise ValueError(f"Expected {self.feature_dim} features, got shape {row.shape}")
        self._buffer.append(row)

    def classify(self) -> Optional[np.ndarray]:
        """
        Run the model on the current window.

        Returns:
            Score matrix of shape (T, C), or None while buffering or when
            a previous inference is still in flight
        """
        if not self.is_ready:
            return None

        if not self._busy.acquire(blocking=False):
            self.dropped_frames += 1
            logger.debug(f"Inference busy, frame dropped ({self.dropped_frames} total)")
            return None

        try:
            window = np.stack(self._buffer).astype(np.float32)
            scores = np.asarray(self.model(window))
        finally:
            self._busy.release()

        # (1, T, C) -> (T, C); any other shape is left for the decoder to reject
        if scores.ndim == 3 and scores.shape[0] == 1:
            scores = scores[0]
        return scores

    def reset(self):
        self._buffer.clear()
