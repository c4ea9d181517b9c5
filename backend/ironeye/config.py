"""Engine configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings

INCHES_TO_METERS = 0.0254


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""
    
    # Feature schema the phase model was trained on
    feature_schema_version: str = "snatch-v4"
    
    # Keypoint smoothing (One Euro filter)
    smoothing_enabled: bool = True
    smoothing_min_cutoff: float = 0.5  # Hz, cutoff when the joint is still
    smoothing_beta: float = 0.05  # Cutoff gain per unit/s of joint speed
    smoothing_derivative_cutoff: float = 1.0  # Hz
    
    # Feature extraction
    feature_min_confidence: float = 0.3
    feature_max_frame_gap_seconds: float = 1.0  # Larger gaps zero the velocity terms
    
    # Calibration ("subject as ruler")
    calibration_min_confidence: float = 0.5
    calibration_body_proportion: float = 0.90  # Nose-to-ankle share of full height, unvalidated
    calibration_good_confidence: float = 0.8
    default_height_inches: float = 70.0
    default_units_per_meter: float = 0.30  # Used until the user calibrates
    
    # Phase classifier / decoder
    classifier_window_frames: int = 36
    decoder_self_transition_bonus: float = 2.0
    decoder_illegal_penalty: float = -1000.0
    
    # Session engine thresholds
    side_lock_near_ankle: float = 0.12
    park_velocity_max: float = 0.50  # m/s
    park_cancel_velocity: float = 3.0  # m/s
    park_debounce_frames: int = 15
    reset_duration_frames: int = 30
    reset_torso_ratio: float = 0.85
    reset_wrist_tolerance: float = 0.15  # Max wrist drop below the neutral baseline when standing
    auto_calibration_frames: int = 30
    
    class Config:
        env_prefix = "IRONEYE_"
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
