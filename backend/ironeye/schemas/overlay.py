"""Per-frame overlay schema."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel


class TrackingConfidence(str, Enum):
    """Coarse tracking quality shown to the athlete."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    LOST = "lost"


class OverlaySnapshot(BaseModel):
    """Everything the UI needs to draw one frame."""
    timestamp: float = 0.0
    phase: str = "STANDING"
    side: Optional[str] = None
    rep_count: int = 0
    current_velocity: float = 0.0  # m/s, upward positive
    peak_velocity: float = 0.0  # m/s, current rep
    is_in_concentric: bool = False
    is_session_active: bool = False
    is_parked: bool = False
    tracking_confidence: TrackingConfidence = TrackingConfidence.LOST
    feedback: Optional[str] = None
    alert: Optional[str] = None
