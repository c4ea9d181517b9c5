"""
Snatch session engine ("the referee").

Turns decoded phases + raw geometry into session state:

1. Side lock: the set begins when one wrist is below its knee and close to
   its ankle (hand on the bell). That side stays active for the whole set.
2. Rep counting: ordered flags, so only a full cycle counts:
       power phase (HIKE / PULL) -> top (LOCKOUT) -> end (DROP / PARK)
3. Velocity gating: peak velocity only updates during concentric phases.
4. Session end: geometry, not the classifier, decides when the athlete has
   parked the bell and stood back up.

Image coordinates: y grows DOWNWARD, so "lower on screen" means larger y.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional
import logging

from ironeye.cv.pose import PoseFrame, Side, SIDE_LANDMARKS, MediaPipeLandmark, NUM_LANDMARKS
from ironeye.cv.phase_decoder import SnatchPhase

logger = logging.getLogger(__name__)


POWER_PHASES: FrozenSet[SnatchPhase] = frozenset({SnatchPhase.HIKE, SnatchPhase.PULL})
TOP_PHASES: FrozenSet[SnatchPhase] = frozenset({SnatchPhase.LOCKOUT})
END_PHASES: FrozenSet[SnatchPhase] = frozenset({SnatchPhase.DROP, SnatchPhase.PARK})
CONCENTRIC_PHASES: FrozenSet[SnatchPhase] = frozenset({SnatchPhase.PULL, SnatchPhase.FLOAT})
ECCENTRIC_PHASES: FrozenSet[SnatchPhase] = frozenset({SnatchPhase.HIKE, SnatchPhase.DROP})


@dataclass
class SessionState:
    """Public state of one set."""
    is_session_active: bool = False
    active_side: Optional[Side] = None
    rep_count: int = 0
    current_velocity: float = 0.0
    peak_velocity: float = 0.0
    last_phase: SnatchPhase = SnatchPhase.STANDING
    is_in_concentric: bool = False
    is_parked: bool = False
    feedback: Optional[str] = "READY"


@dataclass
class AutoCalibration:
    """
    Posture baseline collected from the first frames, locked or not.

    Only used to recognise "athlete is standing upright again".
    """
    frames_captured: int = 0
    neutral_wrist_offset: float = 0.0  # Mean wrist-minus-hip y while neutral
    max_torso_length: float = 0.0  # Largest shoulder-hip vertical span seen
    is_complete: bool = False
    _offset_sum: float = field(default=0.0, repr=False)


class SnatchSessionEngine:
    """
    Debounced finite-state referee for one snatch set.

    Usage:
        engine = SnatchSessionEngine()
        for phase, frame, velocity in stream:
            state = engine.update(phase, frame, velocity)
    """

    # Geometry (normalized screen units)
    SIDE_LOCK_NEAR_ANKLE = 0.12  # Max wrist-ankle vertical gap for "hand on bell"
    MIN_GEOMETRY_CONFIDENCE = 0.3

    # Velocity (m/s)
    PARK_VELOCITY_MAX = 0.50
    PARK_CANCEL_VELOCITY = 3.0

    # Debounce (frames)
    PARK_DEBOUNCE_FRAMES = 15
    RESET_DURATION_FRAMES = 30
    CALIBRATION_FRAMES = 30

    RESET_TORSO_RATIO = 0.85  # Torso must be this extended vs. the max seen
    RESET_WRIST_TOLERANCE = 0.15  # Allowed wrist drop below the neutral baseline

    TRUNK = (
        MediaPipeLandmark.LEFT_SHOULDER, MediaPipeLandmark.RIGHT_SHOULDER,
        MediaPipeLandmark.LEFT_HIP, MediaPipeLandmark.RIGHT_HIP,
    )
    WRISTS = (MediaPipeLandmark.LEFT_WRIST, MediaPipeLandmark.RIGHT_WRIST)

    def __init__(
        self,
        side_lock_near_ankle: float = SIDE_LOCK_NEAR_ANKLE,
        park_velocity_max: float = PARK_VELOCITY_MAX,
        park_cancel_velocity: float = PARK_CANCEL_VELOCITY,
        park_debounce_frames: int = PARK_DEBOUNCE_FRAMES,
        reset_duration_frames: int = RESET_DURATION_FRAMES,
        reset_torso_ratio: float = RESET_TORSO_RATIO,
        calibration_frames: int = CALIBRATION_FRAMES,
        reset_wrist_tolerance: float = RESET_WRIST_TOLERANCE
    ):
        self.side_lock_near_ankle = side_lock_near_ankle
        self.park_velocity_max = park_velocity_max
        self.park_cancel_velocity = park_cancel_velocity
        self.park_debounce_frames = park_debounce_frames
        self.reset_duration_frames = reset_duration_frames
        self.reset_torso_ratio = reset_torso_ratio
        self.reset_wrist_tolerance = reset_wrist_tolerance
        self.calibration_frames = max(1, calibration_frames)

        self.state = SessionState()
        self.calibration = AutoCalibration()

        self._has_entered_power = False
        self._has_reached_top = False
        self._park_timer = 0
        self._stand_timer = 0

    @property
    def active_side(self) -> Optional[Side]:
        return self.state.active_side

    @property
    def is_locked(self) -> bool:
        return self.state.is_session_active

    def update(self, phase: SnatchPhase, frame: PoseFrame, velocity_mps: float) -> SessionState:
        """
        Advance the referee by one frame.

        Args:
            phase: Decoded phase for this frame
            frame: Raw (unsmoothed) pose frame
            velocity_mps: Real vertical wrist velocity, upward positive

        Returns:
            Current session state
        """
        self._run_auto_calibration(frame)

        if not self.state.is_session_active:
            side = self._detect_lock_pattern(frame)
            if side is not None:
                self._lock_session(side)
        else:
            self._manage_active_session(frame, velocity_mps)

        # The session may have just been unlocked above
        if self.state.is_session_active:
            self._handle_phase_transition(phase)
            self._track_velocity(phase, velocity_mps)

        self.state.last_phase = phase
        self.state.current_velocity = velocity_mps
        return self.state

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _manage_active_session(self, frame: PoseFrame, velocity_mps: float):
        # False start: locked but no reps, athlete stood back up
        if self.state.rep_count == 0:
            if self._check_standing_reset(frame):
                self._stand_timer += 1
                if self._stand_timer > self.reset_duration_frames:
                    logger.info("False start (no reps), unlocking session")
                    self.reset()
            else:
                self._stand_timer = 0
            return

        side = self.state.active_side or Side.RIGHT
        is_hinged = self._check_setup_geometry(frame, side)
        is_still = abs(velocity_mps) < self.park_velocity_max

        if is_hinged and is_still:
            self._park_timer += 1
            if self._park_timer > self.park_debounce_frames and not self.state.is_parked:
                logger.info(f"Bell parked after {self.state.rep_count} reps")
                self.state.is_parked = True
                self.state.feedback = "PARKED"
                # Stand-up debounce starts from the park, not from earlier frames
                self._stand_timer = 0
        else:
            self._park_timer = 0

        if self.state.is_parked:
            if self._check_standing_reset(frame):
                self._stand_timer += 1
                if self._stand_timer > self.reset_duration_frames:
                    logger.info(f"Session ended: {self.state.rep_count} reps on {side.value} side")
                    self.reset()
                    return
            else:
                self._stand_timer = 0

            # Pause mid-set, not the end of the set
            if abs(velocity_mps) > self.park_cancel_velocity:
                logger.info(f"Park cancelled: velocity {velocity_mps:.2f} > {self.park_cancel_velocity}")
                self.state.is_parked = False
                self._park_timer = 0
                self._stand_timer = 0

    def _lock_session(self, side: Side):
        self.state.is_session_active = True
        self.state.active_side = side
        self.state.rep_count = 0
        self.state.peak_velocity = 0.0
        self.state.is_parked = False
        self.state.is_in_concentric = False
        self.state.feedback = f"LOCKED: {side.value.upper()}"
        self._has_entered_power = False
        self._has_reached_top = False
        self._park_timer = 0
        self._stand_timer = 0
        logger.info(f"Session started: {side.value} side")

    # ------------------------------------------------------------------
    # Rep counting & velocity
    # ------------------------------------------------------------------

    def _track_velocity(self, phase: SnatchPhase, velocity_mps: float):
        if phase in CONCENTRIC_PHASES:
            self.state.is_in_concentric = True
            if velocity_mps > self.state.peak_velocity:
                self.state.peak_velocity = velocity_mps
        elif phase in ECCENTRIC_PHASES:
            self.state.is_in_concentric = False

    def _handle_phase_transition(self, current: SnatchPhase):
        prev = self.state.last_phase
        if current == prev:
            return

        if current in POWER_PHASES and not (prev in POWER_PHASES and self._has_entered_power):
            self._has_entered_power = True
            self._has_reached_top = False
            self.state.peak_velocity = 0.0
            self.state.feedback = current.value

        if current in TOP_PHASES and self._has_entered_power:
            self._has_reached_top = True
            self.state.feedback = current.value

        if prev in TOP_PHASES and current in END_PHASES and self._has_reached_top:
            self.state.rep_count += 1
            self.state.feedback = f"REP {self.state.rep_count}"
            self._has_entered_power = False
            self._has_reached_top = False
            logger.info(f"Rep {self.state.rep_count} credited "
                        f"(peak velocity {self.state.peak_velocity:.2f} m/s)")

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _detect_lock_pattern(self, frame: PoseFrame) -> Optional[Side]:
        for side in (Side.LEFT, Side.RIGHT):
            if self._check_setup_geometry(frame, side):
                return side
        return None

    def _check_setup_geometry(self, frame: PoseFrame, side: Side) -> bool:
        """Hand on a bell at the floor: wrist below knee and near ankle height."""
        idx = SIDE_LANDMARKS[side]
        if frame.min_visibility((idx.wrist, idx.knee, idx.ankle)) < self.MIN_GEOMETRY_CONFIDENCE:
            return False

        wrist = frame.get(idx.wrist)
        knee = frame.get(idx.knee)
        ankle = frame.get(idx.ankle)

        if wrist.y < knee.y:
            return False
        return abs(wrist.y - ankle.y) < self.side_lock_near_ankle

    def _torso_length(self, frame: PoseFrame) -> Optional[float]:
        """Larger shoulder-hip vertical span, or None if the trunk is not clearly visible."""
        if frame.min_visibility(self.TRUNK) < self.MIN_GEOMETRY_CONFIDENCE:
            return None
        left = abs(frame.get(MediaPipeLandmark.LEFT_SHOULDER).y - frame.get(MediaPipeLandmark.LEFT_HIP).y)
        right = abs(frame.get(MediaPipeLandmark.RIGHT_SHOULDER).y - frame.get(MediaPipeLandmark.RIGHT_HIP).y)
        return max(left, right)

    def _wrist_offset(self, frame: PoseFrame) -> float:
        """Mean wrist-minus-hip y (positive = wrists below the hips)."""
        left = frame.get(MediaPipeLandmark.LEFT_WRIST).y - frame.get(MediaPipeLandmark.LEFT_HIP).y
        right = frame.get(MediaPipeLandmark.RIGHT_WRIST).y - frame.get(MediaPipeLandmark.RIGHT_HIP).y
        return (left + right) / 2

    def _run_auto_calibration(self, frame: PoseFrame):
        if len(frame.landmarks) < NUM_LANDMARKS:
            return
        torso = self._torso_length(frame)
        if torso is None:
            return
        cal = self.calibration

        cal.max_torso_length = max(cal.max_torso_length, torso)

        if not cal.is_complete:
            if frame.min_visibility(self.WRISTS) < self.MIN_GEOMETRY_CONFIDENCE:
                return
            cal._offset_sum += self._wrist_offset(frame)
            cal.frames_captured += 1
            if cal.frames_captured >= self.calibration_frames:
                cal.neutral_wrist_offset = cal._offset_sum / cal.frames_captured
                cal.is_complete = True
                logger.info(f"Posture baseline locked: torso={cal.max_torso_length:.3f}, "
                            f"wrist offset={cal.neutral_wrist_offset:.3f}")

    def _check_standing_reset(self, frame: PoseFrame) -> bool:
        """
        Upright torso with both arms hanging.

        Wrists must be below the hips on screen, but no further below than
        the neutral baseline plus a tolerance (a hand still on a bell at the
        floor is not standing). Any unclear trunk or wrist landmark means
        the condition is not met.
        """
        if not self.calibration.is_complete or len(frame.landmarks) < NUM_LANDMARKS:
            return False
        if frame.min_visibility(self.WRISTS) < self.MIN_GEOMETRY_CONFIDENCE:
            return False

        torso = self._torso_length(frame)
        target = self.calibration.max_torso_length * self.reset_torso_ratio
        if torso is None or torso <= target:
            return False

        wrists_below_hips = (
            frame.get(MediaPipeLandmark.LEFT_WRIST).y > frame.get(MediaPipeLandmark.LEFT_HIP).y
            and frame.get(MediaPipeLandmark.RIGHT_WRIST).y > frame.get(MediaPipeLandmark.RIGHT_HIP).y
        )
        max_offset = max(self.calibration.neutral_wrist_offset, 0.0) + self.reset_wrist_tolerance
        return wrists_below_hips and self._wrist_offset(frame) <= max_offset

    def reset(self):
        """Unlock and clear the set. The posture baseline is kept."""
        self.state = SessionState()
        self._has_entered_power = False
        self._has_reached_top = False
        self._park_timer = 0
        self._stand_timer = 0
