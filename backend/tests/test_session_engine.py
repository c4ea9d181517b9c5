"""Tests for the snatch session engine (side lock, reps, velocity, session end)."""

import pytest

from ironeye.cv.session_engine import SnatchSessionEngine
from ironeye.cv.phase_decoder import SnatchPhase as P
from ironeye.cv.pose import Keypoint, Side, MediaPipeLandmark as L
from tests.conftest import make_frame, STANDING, SETUP_RIGHT, SETUP_LEFT, OVERHEAD_RIGHT


FULL_REP = [P.STANDING, P.HANDONBELL, P.HIKE, P.PULL, P.FLOAT, P.LOCKOUT, P.DROP, P.PARK]


class Clock:
    """Monotonic frame timestamps."""

    def __init__(self):
        self.t = 0.0

    def frame(self, positions, **kwargs):
        self.t += 1 / 30
        return make_frame(self.t, positions, **kwargs)


@pytest.fixture
def clock():
    return Clock()


def locked_engine(clock, **kwargs) -> SnatchSessionEngine:
    params = dict(calibration_frames=3, reset_duration_frames=5)
    params.update(kwargs)
    engine = SnatchSessionEngine(**params)
    engine.update(P.STANDING, clock.frame(SETUP_RIGHT), 0.0)
    assert engine.is_locked
    return engine


def feed(engine, clock, phases, positions=OVERHEAD_RIGHT, velocity=0.0):
    counts = []
    for phase in phases:
        state = engine.update(phase, clock.frame(positions), velocity)
        counts.append(state.rep_count)
    return counts


class TestSideLock:

    def test_locks_right_side_from_setup_geometry(self, clock):
        engine = SnatchSessionEngine()
        state = engine.update(P.STANDING, clock.frame(SETUP_RIGHT), 0.0)
        assert state.is_session_active
        assert state.active_side == Side.RIGHT
        assert state.rep_count == 0

    def test_locks_left_side(self, clock):
        engine = SnatchSessionEngine()
        engine.update(P.STANDING, clock.frame(SETUP_LEFT), 0.0)
        assert engine.active_side == Side.LEFT

    def test_standing_does_not_lock(self, clock):
        engine = SnatchSessionEngine()
        for _ in range(10):
            engine.update(P.STANDING, clock.frame(STANDING), 0.0)
        assert not engine.is_locked
        assert engine.active_side is None

    def test_low_visibility_does_not_lock(self, clock):
        engine = SnatchSessionEngine()
        engine.update(P.STANDING, clock.frame(SETUP_RIGHT, visibility=0.1), 0.0)
        assert not engine.is_locked

    def test_missing_landmarks_degrade_gracefully(self, clock):
        engine = locked_engine(clock)
        empty = clock.frame(STANDING)
        empty.landmarks = []
        state = engine.update(P.HANDONBELL, empty, 0.0)
        assert state.is_session_active


class TestRepCounting:

    def test_full_cycle_counts_once_after_lockout_to_drop(self, clock):
        engine = locked_engine(clock)
        counts = feed(engine, clock, FULL_REP)
        assert counts == [0, 0, 0, 0, 0, 0, 1, 1]

    def test_repeated_phase_frames_do_not_double_count(self, clock):
        engine = locked_engine(clock)
        phases = [p for p in FULL_REP for _ in range(4)]
        assert feed(engine, clock, phases)[-1] == 1

    @pytest.mark.parametrize("phases", [
        [P.HIKE, P.PULL, P.DROP, P.CATCH, P.PARK],
        [P.HIKE, P.PULL, P.FLOAT, P.DROP, P.STANDING],
        [P.HANDONBELL, P.LOCKOUT, P.DROP],
        [P.HIKE, P.PULL, P.FLOAT, P.LOCKOUT, P.LOCKOUT],
    ])
    def test_partial_lifts_do_not_count(self, clock, phases):
        engine = locked_engine(clock)
        assert feed(engine, clock, phases)[-1] == 0

    def test_chained_reps_through_catch(self, clock):
        engine = locked_engine(clock)
        phases = [P.HIKE, P.PULL, P.FLOAT, P.LOCKOUT, P.DROP,
                  P.CATCH, P.PULL, P.FLOAT, P.LOCKOUT, P.DROP]
        assert feed(engine, clock, phases)[-1] == 2

    def test_lockout_to_park_counts(self, clock):
        engine = locked_engine(clock)
        assert feed(engine, clock, [P.HIKE, P.PULL, P.FLOAT, P.LOCKOUT, P.PARK])[-1] == 1

    def test_no_reps_while_unlocked(self, clock):
        engine = SnatchSessionEngine()
        assert feed(engine, clock, FULL_REP, positions=STANDING)[-1] == 0


class TestVelocityGating:

    def test_peak_only_tracks_concentric_phases(self, clock):
        engine = locked_engine(clock)
        engine.update(P.HIKE, clock.frame(OVERHEAD_RIGHT), 1.0)
        assert engine.state.peak_velocity == 0.0

        engine.update(P.PULL, clock.frame(OVERHEAD_RIGHT), 2.5)
        assert engine.state.peak_velocity == 2.5
        assert engine.state.is_in_concentric

        engine.update(P.FLOAT, clock.frame(OVERHEAD_RIGHT), 3.1)
        state = engine.update(P.LOCKOUT, clock.frame(OVERHEAD_RIGHT), 4.0)
        assert state.peak_velocity == 3.1
        assert state.current_velocity == 4.0

        state = engine.update(P.DROP, clock.frame(OVERHEAD_RIGHT), -3.0)
        assert not state.is_in_concentric
        assert state.peak_velocity == 3.1

    def test_new_hike_clears_peak(self, clock):
        engine = locked_engine(clock)
        engine.update(P.HIKE, clock.frame(OVERHEAD_RIGHT), 0.0)
        engine.update(P.PULL, clock.frame(OVERHEAD_RIGHT), 2.0)
        engine.update(P.DROP, clock.frame(OVERHEAD_RIGHT), 0.0)
        engine.update(P.STANDING, clock.frame(OVERHEAD_RIGHT), 0.0)
        engine.update(P.HANDONBELL, clock.frame(OVERHEAD_RIGHT), 0.0)
        state = engine.update(P.HIKE, clock.frame(OVERHEAD_RIGHT), 0.0)
        assert state.peak_velocity == 0.0


class TestSessionEnd:

    def test_false_start_unlocks_after_debounce(self, clock):
        engine = locked_engine(clock)
        for _ in range(3):
            engine.update(P.HANDONBELL, clock.frame(STANDING), 0.0)
        assert engine.is_locked

        for _ in range(7):
            engine.update(P.HANDONBELL, clock.frame(STANDING), 0.0)
        assert not engine.is_locked
        assert engine.active_side is None

    def test_brief_stand_does_not_unlock(self, clock):
        engine = locked_engine(clock)
        for _ in range(4):
            feed(engine, clock, [P.HANDONBELL] * 4, positions=STANDING)
            feed(engine, clock, [P.HANDONBELL], positions=OVERHEAD_RIGHT)
        assert engine.is_locked

    def test_standing_mid_set_without_park_keeps_session(self, clock):
        engine = locked_engine(clock)
        feed(engine, clock, FULL_REP)
        feed(engine, clock, [P.STANDING] * 20, positions=STANDING)
        assert engine.is_locked
        assert engine.state.rep_count == 1

    def test_park_then_stand_ends_session(self, clock):
        engine = locked_engine(clock, park_debounce_frames=3, reset_duration_frames=3)
        feed(engine, clock, FULL_REP)

        feed(engine, clock, [P.PARK] * 5, positions=SETUP_RIGHT)
        assert engine.state.is_parked
        assert engine.state.rep_count == 1

        feed(engine, clock, [P.STANDING] * 5, positions=STANDING)
        assert not engine.is_locked
        assert engine.state.rep_count == 0

    def test_velocity_spike_cancels_park(self, clock):
        engine = locked_engine(clock, park_debounce_frames=3)
        feed(engine, clock, FULL_REP)
        feed(engine, clock, [P.PARK] * 5, positions=SETUP_RIGHT)
        assert engine.state.is_parked

        state = engine.update(P.HIKE, clock.frame(SETUP_RIGHT), 5.0)
        assert not state.is_parked
        assert state.is_session_active

    def test_moving_bell_is_not_parked(self, clock):
        engine = locked_engine(clock, park_debounce_frames=3)
        feed(engine, clock, FULL_REP)
        feed(engine, clock, [P.HIKE] * 10, positions=SETUP_RIGHT, velocity=1.5)
        assert not engine.state.is_parked

    def test_posture_baseline_survives_reset(self, clock):
        engine = locked_engine(clock)
        feed(engine, clock, [P.HANDONBELL] * 5, positions=OVERHEAD_RIGHT)
        assert engine.calibration.is_complete
        engine.reset()
        assert engine.calibration.is_complete
        assert engine.calibration.max_torso_length == pytest.approx(0.25)

    def test_low_confidence_glitch_does_not_inflate_torso_baseline(self, clock):
        engine = locked_engine(clock, park_debounce_frames=3, reset_duration_frames=3)
        glitch = {L.LEFT_SHOULDER: Keypoint(0.45, 0.0, 0.0, 0.02)}
        engine.update(P.HANDONBELL, clock.frame(OVERHEAD_RIGHT, overrides=glitch), 0.0)
        assert engine.calibration.max_torso_length == pytest.approx(0.05)

        feed(engine, clock, FULL_REP)
        feed(engine, clock, [P.PARK] * 5, positions=SETUP_RIGHT)
        assert engine.state.is_parked

        feed(engine, clock, [P.STANDING] * 5, positions=STANDING)
        assert not engine.is_locked

    def test_occluded_wrists_are_not_standing(self, clock):
        engine = locked_engine(clock)
        feed(engine, clock, [P.HANDONBELL] * 3, positions=OVERHEAD_RIGHT)
        hidden = {L.LEFT_WRIST: Keypoint(*STANDING[L.LEFT_WRIST], visibility=0.1)}
        for _ in range(10):
            engine.update(P.HANDONBELL, clock.frame(STANDING, overrides=hidden), 0.0)
        assert engine.is_locked

    def test_wrists_far_below_neutral_are_not_standing(self, clock):
        engine = locked_engine(clock, park_debounce_frames=3, reset_duration_frames=3)
        feed(engine, clock, FULL_REP)
        feed(engine, clock, [P.PARK] * 5, positions=SETUP_RIGHT)
        assert engine.state.is_parked
        assert engine.calibration.neutral_wrist_offset < 0.0

        reaching = {**STANDING, L.LEFT_WRIST: (0.44, 0.76), L.RIGHT_WRIST: (0.56, 0.76)}
        feed(engine, clock, [P.STANDING] * 6, positions=reaching)
        assert engine.is_locked

        feed(engine, clock, [P.STANDING] * 5, positions=STANDING)
        assert not engine.is_locked

    def test_stand_debounce_restarts_when_bell_is_parked(self, clock):
        # Upright squat with the left hand on the bell: hinged and standing at once
        squat = {**STANDING, L.LEFT_WRIST: (0.44, 0.86), L.RIGHT_WRIST: (0.56, 0.80)}
        engine = SnatchSessionEngine(calibration_frames=3, reset_duration_frames=10,
                                     park_debounce_frames=3)
        engine.update(P.STANDING, clock.frame(squat), 0.0)
        assert engine.active_side == Side.LEFT

        feed(engine, clock, [P.HANDONBELL, P.HANDONBELL, P.HIKE, P.PULL,
                             P.FLOAT, P.LOCKOUT, P.DROP], positions=squat)
        assert engine.state.rep_count == 1

        feed(engine, clock, [P.PARK] * 4, positions=squat)
        assert engine.state.is_parked

        feed(engine, clock, [P.PARK] * 4, positions=squat)
        assert engine.is_locked
        assert engine.state.rep_count == 1
