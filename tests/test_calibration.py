import numpy as np
import pytest

from navsense.calibration import (
    CalibrationStatus,
    calibrate,
    calibrate_with_status,
    fit_inverse_depth,
    normalize_by_max,
)
from navsense.io_types import CalibrationPoint


def _ramp(h=32, w=32):
    # relative depth growing from top to bottom, max 4.0
    rows = np.linspace(0.5, 4.0, h, dtype=np.float32)
    return np.repeat(rows[:, None], w, axis=1)


def test_round_trip_at_reference_pixels():
    rel = _ramp()
    points = [CalibrationPoint(5, 0, 7.0), CalibrationPoint(5, 31, 1.75)]
    depth_m, status = calibrate_with_status(rel, points)
    assert status is CalibrationStatus.OK
    assert depth_m.dtype == np.float32
    assert depth_m.shape == rel.shape
    assert depth_m[0, 5] == pytest.approx(7.0, rel=1e-5)
    assert depth_m[31, 5] == pytest.approx(1.75, rel=1e-5)


def test_inverse_depth_is_affine_in_normalized_relative():
    rel = _ramp()
    points = [CalibrationPoint(0, 3, 5.0), CalibrationPoint(0, 20, 2.0)]
    depth_m = calibrate(rel, points)
    norm = normalize_by_max(rel)
    a, b, status = fit_inverse_depth(norm, points)
    assert status is CalibrationStatus.OK
    np.testing.assert_allclose(1.0 / depth_m, a * norm + b, rtol=1e-5)


def test_least_squares_with_three_points():
    rel = _ramp()
    norm = normalize_by_max(rel)
    # points generated from a known affine inverse-depth law are recovered exactly
    a_true, b_true = 0.4, 0.1
    pts = [CalibrationPoint(1, y, 1.0 / (a_true * float(norm[y, 1]) + b_true)) for y in (0, 10, 31)]
    a, b, status = fit_inverse_depth(norm, pts)
    assert status is CalibrationStatus.OK
    assert a == pytest.approx(a_true, rel=1e-4)
    assert b == pytest.approx(b_true, rel=1e-4)


def test_all_zero_map_gives_zero_map():
    rel = np.zeros((16, 16), np.float32)
    points = [CalibrationPoint(0, 0, 7.0), CalibrationPoint(0, 15, 1.75)]
    depth_m, status = calibrate_with_status(rel, points)
    assert status is CalibrationStatus.INVALID_DEPTH_INPUT
    assert not depth_m.any()


def test_negative_map_gives_zero_map():
    rel = -np.ones((8, 8), np.float32)
    out = calibrate(rel, [CalibrationPoint(0, 0, 7.0), CalibrationPoint(0, 7, 1.75)])
    assert out.shape == (8, 8)
    assert not out.any()


def test_single_point_gives_zero_map():
    depth_m, status = calibrate_with_status(_ramp(), [CalibrationPoint(0, 0, 3.0)])
    assert status is CalibrationStatus.INSUFFICIENT_POINTS
    assert not depth_m.any()


def test_singular_system_gives_zero_map():
    # both references sample the same relative value
    rel = np.ones((8, 8), np.float32)
    depth_m, status = calibrate_with_status(rel, [CalibrationPoint(0, 0, 7.0), CalibrationPoint(3, 3, 2.0)])
    assert status is CalibrationStatus.SINGULAR
    assert not depth_m.any()


def test_point_outside_map_is_not_fatal():
    depth_m, status = calibrate_with_status(_ramp(8, 8), [CalibrationPoint(0, 0, 7.0), CalibrationPoint(128, 255, 1.75)])
    assert status is CalibrationStatus.INSUFFICIENT_POINTS
    assert not depth_m.any()


def test_calibration_point_rejects_non_positive_depth():
    with pytest.raises(ValueError):
        CalibrationPoint(0, 0, 0.0)
    with pytest.raises(ValueError):
        CalibrationPoint(0, 0, -1.0)
