"""
Live snatch tracking engine.

PIPELINE COMPONENTS:
1. KeypointSmoother: One Euro per-landmark smoothing (causal)
2. CalibrationEstimator: "Subject as ruler" units-per-meter scale
3. FeatureExtractor: Frozen 12-feature classifier schema + real velocity
4. PhaseClassifier: Rolling window around the external phase model
5. ViterbiDecoder: Grammar-constrained streaming phase decoding
6. SnatchSessionEngine: Side lock, rep counting, velocity gating, session end
7. AnalysisPipeline: Per-frame orchestration and UI snapshots

Usage:
    from ironeye.cv import create_analysis_pipeline, PoseFrame

    pipeline = create_analysis_pipeline(model)
    for frame in frames:
        snapshot = pipeline.process(frame)
        print(snapshot.phase, snapshot.rep_count)
"""

from ironeye.cv.pose import MediaPipeLandmark, Keypoint, PoseFrame, Side, SIDE_LANDMARKS
from ironeye.cv.keypoint_smoother import OneEuroFilter, KeypointSmoother
from ironeye.cv.calibration import CalibrationEstimator, CalibrationProfile, CalibrationQuality
from ironeye.cv.features import (
    FeatureExtractor, FeatureVector, FeatureCache, FeatureResult,
    FEATURE_DIM, FEATURE_NAMES, SCHEMA_VERSION, calculate_angle
)
from ironeye.cv.phase_decoder import (
    SnatchPhase, PHASES, TransitionGrammar, ViterbiDecoder, DecoderContractError
)
from ironeye.cv.phase_classifier import PhaseClassifier
from ironeye.cv.session_engine import SnatchSessionEngine, SessionState, AutoCalibration
from ironeye.cv.analysis import AnalysisPipeline, create_analysis_pipeline, tracking_tier

__all__ = [
    # Pose data
    "MediaPipeLandmark",
    "Keypoint",
    "PoseFrame",
    "Side",
    "SIDE_LANDMARKS",
    
    # Smoothing
    "OneEuroFilter",
    "KeypointSmoother",
    
    # Calibration
    "CalibrationEstimator",
    "CalibrationProfile",
    "CalibrationQuality",
    
    # Features
    "FeatureExtractor",
    "FeatureVector",
    "FeatureCache",
    "FeatureResult",
    "FEATURE_DIM",
    "FEATURE_NAMES",
    "SCHEMA_VERSION",
    "calculate_angle",
    
    # Classification & decoding
    "PhaseClassifier",
    "SnatchPhase",
    "PHASES",
    "TransitionGrammar",
    "ViterbiDecoder",
    "DecoderContractError",
    
    # Session engine
    "SnatchSessionEngine",
    "SessionState",
    "AutoCalibration",
    
    # Main pipeline
    "AnalysisPipeline",
    "create_analysis_pipeline",
    "tracking_tier",
]
