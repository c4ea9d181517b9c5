"""Tests for subject-as-ruler calibration."""

import pytest

from ironeye.cv.calibration import CalibrationEstimator, CalibrationQuality
from ironeye.cv.pose import Keypoint, MediaPipeLandmark as L
from tests.conftest import make_frame, STANDING


def test_calibration_yields_positive_scale():
    estimator = CalibrationEstimator()
    profile = estimator.calibrate(make_frame(0.0, STANDING), height_m=1.8)

    assert profile is not None
    assert profile.units_per_meter > 0
    # Nose 0.15, ankles 0.90 -> 0.75 span, / 0.90 proportion, / 1.8 m
    assert profile.units_per_meter == pytest.approx(0.75 / 0.90 / 1.8)
    assert estimator.profile is profile


def test_quality_tiers():
    estimator = CalibrationEstimator()
    good = estimator.calibrate(make_frame(0.0, STANDING, visibility=0.95), 1.8)
    assert good.quality == CalibrationQuality.GOOD

    ok = estimator.calibrate(make_frame(0.0, STANDING, visibility=0.7), 1.8)
    assert ok.quality == CalibrationQuality.OK


def test_rejected_without_prior_profile():
    estimator = CalibrationEstimator()
    hidden_ankle = {L.LEFT_ANKLE: Keypoint(0.47, 0.90, 0.0, 0.1)}
    frame = make_frame(0.0, STANDING, overrides=hidden_ankle)

    assert estimator.calibrate(frame, 1.8) is None
    assert estimator.profile is None
    assert estimator.quality == CalibrationQuality.NONE


def test_rejected_call_keeps_prior_profile():
    estimator = CalibrationEstimator()
    first = estimator.calibrate(make_frame(0.0, STANDING), 1.8)

    hidden_nose = {L.NOSE: Keypoint(0.5, 0.15, 0.0, 0.0)}
    assert estimator.calibrate(make_frame(1.0, STANDING, overrides=hidden_nose), 1.6) is None
    assert estimator.profile is first


def test_recalibration_overwrites():
    estimator = CalibrationEstimator()
    estimator.calibrate(make_frame(0.0, STANDING), 1.8)
    second = estimator.calibrate(make_frame(1.0, STANDING), 1.5)
    assert estimator.profile is second
    assert second.height_m == 1.5


def test_empty_frame_is_rejected():
    frame = make_frame(0.0)
    frame.landmarks = []
    assert CalibrationEstimator().calibrate(frame, 1.8) is None


def test_invalid_height_raises():
    with pytest.raises(ValueError):
        CalibrationEstimator().calibrate(make_frame(0.0, STANDING), 0.0)


def test_to_meters():
    profile = CalibrationEstimator().calibrate(make_frame(0.0, STANDING), 1.8)
    assert profile.to_meters(profile.units_per_meter) == pytest.approx(1.0)
