"""
Live analysis pipeline.

PER-FRAME STAGES:
1. Keypoint smoothing (One Euro, causal)
2. Feature extraction (side injected from the session engine)
3. Phase classification (rolling window, dropped when busy)
4. Streaming Viterbi decoding
5. Session engine update (raw geometry + real velocity)
6. Drift correction between engine and decoder
7. Overlay snapshot for the UI

Strictly one frame at a time, in arrival order. If frames come from more
than one thread the caller must serialize calls to process().
"""

from typing import Callable, Optional
import logging

from ironeye.config import Settings, get_settings, INCHES_TO_METERS
from ironeye.cv.pose import PoseFrame
from ironeye.cv.keypoint_smoother import KeypointSmoother
from ironeye.cv.calibration import CalibrationEstimator, CalibrationProfile
from ironeye.cv.features import FeatureExtractor, FeatureCache, FeatureResult, SCHEMA_VERSION
from ironeye.cv.phase_classifier import PhaseClassifier, PhaseModel
from ironeye.cv.phase_decoder import ViterbiDecoder, TransitionGrammar, SnatchPhase
from ironeye.cv.session_engine import SnatchSessionEngine
from ironeye.schemas.overlay import OverlaySnapshot, TrackingConfidence
from ironeye.schemas.calibration import CalibrationRequest, CalibrationResponse

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.75
MEDIUM_CONFIDENCE = 0.5
DEFAULT_HEIGHT_M = 70.0 * INCHES_TO_METERS


def tracking_tier(result: Optional[FeatureResult]) -> TrackingConfidence:
    """Map landmark confidence to the UI's coarse tier."""
    if result is None:
        return TrackingConfidence.LOST
    if result.confidence >= HIGH_CONFIDENCE:
        return TrackingConfidence.HIGH
    if result.confidence >= MEDIUM_CONFIDENCE:
        return TrackingConfidence.MEDIUM
    return TrackingConfidence.LOW


class AnalysisPipeline:
    """
    Owns every stateful component of one live session.

    Components are injected so tests (or several concurrent sessions) never
    share state. Use create_analysis_pipeline() to build one from Settings.
    """

    def __init__(
        self,
        classifier: PhaseClassifier,
        decoder: ViterbiDecoder,
        engine: SnatchSessionEngine,
        extractor: Optional[FeatureExtractor] = None,
        calibration: Optional[CalibrationEstimator] = None,
        smoother: Optional[KeypointSmoother] = None,
        on_update: Optional[Callable[[OverlaySnapshot], None]] = None,
        default_height_m: float = DEFAULT_HEIGHT_M
    ):
        if decoder.steps != classifier.window_frames:
            raise ValueError(
                f"Decoder expects {decoder.steps} rows per call but the classifier "
                f"window is {classifier.window_frames} frames"
            )
        self.classifier = classifier
        self.decoder = decoder
        self.engine = engine
        self.extractor = extractor or FeatureExtractor()
        self.calibration = calibration or CalibrationEstimator()
        self.smoother = smoother
        self.on_update = on_update
        self.default_height_m = default_height_m

        self.cache = FeatureCache()
        self.current_phase = SnatchPhase.STANDING
        self.snapshot = OverlaySnapshot()
        self.frames_processed = 0

        self._last_raw_frame: Optional[PoseFrame] = None
        self._last_timestamp: Optional[float] = None
        self._pending_alert: Optional[str] = None

    def process(self, frame: PoseFrame) -> OverlaySnapshot:
        """
        Process one pose frame.

        Args:
            frame: Raw pose frame from the pose source

        Returns:
            Overlay snapshot (the previous one, marked lost, if the frame has no full landmark set)
        """
        if self._last_timestamp is not None and frame.timestamp < self._last_timestamp:
            logger.info(f"Timestamp went backward ({self._last_timestamp:.3f} -> "
                        f"{frame.timestamp:.3f}), resetting temporal state")
            self._reset_temporal_state()
        self._last_timestamp = frame.timestamp
        self._last_raw_frame = frame
        self.frames_processed += 1

        smoothed = self.smoother.process(frame) if self.smoother else frame

        profile = self.calibration.profile
        result = self.extractor.extract(
            smoothed,
            self.cache,
            side=self.engine.active_side,
            units_per_meter=profile.units_per_meter if profile else None
        )

        if result is None and not frame.is_valid:
            self.snapshot = self.snapshot.model_copy(update={
                "timestamp": frame.timestamp,
                "tracking_confidence": TrackingConfidence.LOST,
            })
            return self._emit(self.snapshot)

        # Geometry runs every frame; only classification needs usable features
        velocity_mps = 0.0
        if result is not None:
            velocity_mps = result.velocity_mps
            self.classifier.add_frame(result.vector)
            scores = self.classifier.classify()
            if scores is not None:
                self.current_phase = self.decoder.decode(scores)

        state = self.engine.update(self.current_phase, frame, velocity_mps)
        self._correct_drift()

        if self.frames_processed % 30 == 0:
            logger.debug(f"Frame {frame.frame_number}: phase={self.current_phase.value}, "
                         f"reps={state.rep_count}, v={velocity_mps:.2f}m/s")

        self.snapshot = OverlaySnapshot(
            timestamp=frame.timestamp,
            phase=self.current_phase.value,
            side=state.active_side.value if state.active_side else None,
            rep_count=state.rep_count,
            current_velocity=state.current_velocity,
            peak_velocity=state.peak_velocity,
            is_in_concentric=state.is_in_concentric,
            is_session_active=state.is_session_active,
            is_parked=state.is_parked,
            tracking_confidence=tracking_tier(result),
            feedback=state.feedback,
            alert=self._pending_alert,
        )
        self._pending_alert = None
        return self._emit(self.snapshot)

    def _correct_drift(self):
        """Keep the decoder consistent with what geometry has proven."""
        if self.engine.is_locked and self.engine.state.rep_count == 0:
            if self.current_phase == SnatchPhase.STANDING:
                self.decoder.override(SnatchPhase.HANDONBELL)
                self.current_phase = SnatchPhase.HANDONBELL

        if not self.engine.is_locked and self.current_phase != SnatchPhase.STANDING:
            self.decoder.reset()
            self.current_phase = SnatchPhase.STANDING

    def _emit(self, snapshot: OverlaySnapshot) -> OverlaySnapshot:
        if self.on_update is not None:
            self.on_update(snapshot)
        return snapshot

    def calibrate(self, request: Optional[CalibrationRequest] = None) -> CalibrationResponse:
        """Calibrate against the most recent raw frame (default height if no request)."""
        height_m = request.meters if request is not None else self.default_height_m
        profile: Optional[CalibrationProfile] = None
        if self._last_raw_frame is not None:
            profile = self.calibration.calibrate(self._last_raw_frame, height_m)

        if profile is None:
            message = "Step back until your whole body, head to feet, is in view"
            self._pending_alert = message
            return CalibrationResponse(
                accepted=False,
                quality=self.calibration.quality.value,
                message=message
            )

        return CalibrationResponse(
            accepted=True,
            units_per_meter=profile.units_per_meter,
            quality=profile.quality.value
        )

    def _reset_temporal_state(self):
        if self.smoother is not None:
            self.smoother.reset()
        self.cache.clear()
        self.classifier.reset()

    def reset(self):
        """Start a fresh session. Calibration is kept."""
        self._reset_temporal_state()
        self.engine.reset()
        self.decoder.reset()
        self.current_phase = SnatchPhase.STANDING
        self.snapshot = OverlaySnapshot()
        self._last_timestamp = None
        self._pending_alert = None
        logger.info("Analysis pipeline reset")


def create_analysis_pipeline(
    model: PhaseModel,
    settings: Optional[Settings] = None,
    on_update: Optional[Callable[[OverlaySnapshot], None]] = None
) -> AnalysisPipeline:
    """
    Factory function to build a pipeline from settings.

    Args:
        model: Black-box phase model, (T, F) window -> (T, C) scores
        settings: Settings to use (default: cached environment settings)
        on_update: Optional per-frame UI callback

    Returns:
        AnalysisPipeline instance
    """
    settings = settings or get_settings()
    if settings.feature_schema_version != SCHEMA_VERSION:
        raise ValueError(
            f"Model expects feature schema {settings.feature_schema_version!r}, "
            f"this build extracts {SCHEMA_VERSION!r}"
        )
    window = settings.classifier_window_frames

    smoother = None
    if settings.smoothing_enabled:
        smoother = KeypointSmoother(
            min_cutoff=settings.smoothing_min_cutoff,
            beta=settings.smoothing_beta,
            d_cutoff=settings.smoothing_derivative_cutoff
        )

    grammar = TransitionGrammar(
        self_transition_bonus=settings.decoder_self_transition_bonus,
        illegal_penalty=settings.decoder_illegal_penalty
    )

    engine = SnatchSessionEngine(
        side_lock_near_ankle=settings.side_lock_near_ankle,
        park_velocity_max=settings.park_velocity_max,
        park_cancel_velocity=settings.park_cancel_velocity,
        park_debounce_frames=settings.park_debounce_frames,
        reset_duration_frames=settings.reset_duration_frames,
        reset_torso_ratio=settings.reset_torso_ratio,
        calibration_frames=settings.auto_calibration_frames,
        reset_wrist_tolerance=settings.reset_wrist_tolerance
    )

    logger.info(f"Analysis pipeline: schema={settings.feature_schema_version}, window={window} frames, "
                f"smoothing={'on' if smoother else 'off'}")

    return AnalysisPipeline(
        classifier=PhaseClassifier(model, window_frames=window),
        decoder=ViterbiDecoder(steps=window, grammar=grammar),
        engine=engine,
        extractor=FeatureExtractor(
            min_confidence=settings.feature_min_confidence,
            max_frame_gap=settings.feature_max_frame_gap_seconds,
            default_units_per_meter=settings.default_units_per_meter
        ),
        calibration=CalibrationEstimator(
            min_confidence=settings.calibration_min_confidence,
            body_proportion=settings.calibration_body_proportion,
            good_confidence=settings.calibration_good_confidence
        ),
        smoother=smoother,
        on_update=on_update,
        default_height_m=settings.default_height_inches * INCHES_TO_METERS
    )
