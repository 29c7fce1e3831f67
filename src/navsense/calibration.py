# src/navsense/calibration.py
import logging
from enum import Enum

import numpy as np

log = logging.getLogger(__name__)

SINGULAR_EPS = 1e-6


class CalibrationStatus(Enum):
    OK = "ok"
    INVALID_DEPTH_INPUT = "invalid_depth_input"
    INSUFFICIENT_POINTS = "insufficient_points"
    SINGULAR = "singular"


def normalize_by_max(relative):
    """Divide by the global max. Returns None when the max is <= 0 (no usable depth)."""
    d = np.asarray(relative, dtype=np.float32)
    if d.size == 0:
        return None
    m = float(np.max(d))
    if not np.isfinite(m) or m <= 0.0:
        return None
    return d / m


def fit_inverse_depth(normalized, points):
    """
    Least-squares fit of inverse depth as an affine function of normalized relative depth:
        1/real = s * rel + t * (1 - rel)
    solved with the closed-form 2x2 normal equations.
    Returns (A, B, status) so that absolute = 1 / (A * rel + B).
    """
    if len(points) < 2:
        return None, None, CalibrationStatus.INSUFFICIENT_POINTS

    h, w = normalized.shape
    rows, ys = [], []
    for p in points:
        if not (0 <= p.pixel_x < w and 0 <= p.pixel_y < h):
            log.warning("Calibration point (%d, %d) lies outside the %dx%d depth map",
                        p.pixel_x, p.pixel_y, w, h)
            return None, None, CalibrationStatus.INSUFFICIENT_POINTS
        rel = float(normalized[p.pixel_y, p.pixel_x])
        rows.append([rel, 1.0 - rel])
        ys.append(1.0 / float(p.real_depth_m))

    A = np.array(rows, dtype=np.float64)
    y = np.array(ys, dtype=np.float64)
    ata = A.T @ A
    aty = A.T @ y

    det = ata[0, 0] * ata[1, 1] - ata[0, 1] * ata[1, 0]
    if abs(det) < SINGULAR_EPS:
        return None, None, CalibrationStatus.SINGULAR

    s = (aty[0] * ata[1, 1] - aty[1] * ata[0, 1]) / det
    t = (ata[0, 0] * aty[1] - ata[1, 0] * aty[0]) / det

    # s = 1/min_depth, t = 1/max_depth
    a_param = s - t
    b_param = t
    return float(a_param), float(b_param), CalibrationStatus.OK


def calibrate_with_status(relative, points):
    """
    Convert a relative (unnormalized) depth map to metres using >= 2 known reference points.
    Degenerate input never raises: a zero-filled map is returned with the matching status.
    """
    relative = np.asarray(relative, dtype=np.float32)
    zeros = np.zeros(relative.shape, dtype=np.float32)

    normalized = normalize_by_max(relative)
    if normalized is None:
        log.debug("Invalid depth map: all values are zero or negative")
        return zeros, CalibrationStatus.INVALID_DEPTH_INPUT

    a_param, b_param, status = fit_inverse_depth(normalized, points)
    if status is not CalibrationStatus.OK:
        log.debug("Depth calibration skipped: %s", status.value)
        return zeros, status

    with np.errstate(divide="ignore"):
        depth_m = 1.0 / (a_param * normalized.astype(np.float64) + b_param)
    return depth_m.astype(np.float32), status


def calibrate(relative, points):
    depth_m, _ = calibrate_with_status(relative, points)
    return depth_m
