"""Pydantic schemas exchanged with UI collaborators."""

from ironeye.schemas.overlay import OverlaySnapshot, TrackingConfidence
from ironeye.schemas.calibration import CalibrationRequest, CalibrationResponse

__all__ = [
    "OverlaySnapshot",
    "TrackingConfidence",
    "CalibrationRequest",
    "CalibrationResponse",
]
