# src/navsense/safe_map.py
"""
Reference "safe distance" surface.

Each cell holds the distance (metres) at which the floor or one of the two side walls
would appear at that pixel in an empty corridor, under a single vanishing-point
perspective model. A real depth reading closer than this value means something is
standing in otherwise open space.
"""
from dataclasses import dataclass

import cv2
import numpy as np

from .io_types import ConfigError

NEAR_BAND_M = 10.0
MID_BAND_M = 150.0


@dataclass(frozen=True)
class CameraMount:
    height_m: float = 1.3
    start_z_m: float = 1.75
    left_wall_m: float = -0.6
    right_wall_m: float = 0.6
    wall_height_m: float = 1.7
    vanishing_ratio: float = 0.3


def _geometry(n, mount):
    center_x = n // 2
    vanishing_y = int(n * mount.vanishing_ratio)
    bottom_y = n + vanishing_y
    world_width = mount.right_wall_m - mount.left_wall_m
    if world_width <= 0:
        raise ConfigError(f"Walls are not ordered left < right: {mount.left_wall_m}, {mount.right_wall_m}")
    scale_x = (bottom_y - vanishing_y) / world_width
    return center_x, vanishing_y, bottom_y, scale_x


def _floor_candidates(u, v, n, mount):
    """Floor plane (y = 0). Returns distance grid with +inf where the floor is not visible."""
    H = mount.height_m
    cx, vy, by, scale_x = _geometry(n, mount)
    factor = (v - vy) / float(by - vy)
    ok = factor > 0
    f = np.where(ok, factor, 1.0)
    z = mount.start_z_m + (H / f - H)
    x = (u - cx) / (scale_x * f)
    ok &= (x >= mount.left_wall_m) & (x <= mount.right_wall_m) & (z >= mount.start_z_m)
    return np.where(ok, np.sqrt(x * x + z * z), np.inf)


def _wall_candidates(u, v, n, mount, wall_x):
    """Vertical wall at world x = wall_x."""
    H = mount.height_m
    cx, vy, by, scale_x = _geometry(n, mount)
    denom = wall_x * scale_x
    if abs(denom) < 1e-9:
        return np.full(np.broadcast(u, v).shape, np.inf)
    factor = (u - cx) / denom
    ok = factor > 0
    f = np.where(ok, factor, 1.0)
    z = mount.start_z_m + (H / f - H)
    denom2 = (by - vy) * f
    ok &= np.abs(denom2) >= 1e-9
    y = H - H * ((v - vy) / np.where(ok, denom2, 1.0))
    ok &= (y >= 0.0) & (y <= mount.wall_height_m) & (z >= mount.start_z_m)
    dy = y - H
    return np.where(ok, np.sqrt(wall_x * wall_x + dy * dy + z * z), np.inf)


def build_safe_map(resolution, mount=None):
    """
    Build the n x n reference map once at start-up. Returned array is float32 and read-only.
    """
    if resolution is None or int(resolution) <= 0:
        raise ConfigError(f"Safe map resolution must be positive, got {resolution}")
    n = int(resolution)
    mount = mount or CameraMount()

    vs, us = np.indices((n, n), dtype=np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        floor = _floor_candidates(us, vs, n, mount)
        left = _wall_candidates(us, vs, n, mount, mount.left_wall_m)
        right = _wall_candidates(us, vs, n, mount, mount.right_wall_m)

    safe = np.minimum(np.minimum(floor, left), right).astype(np.float32)
    safe.flags.writeable = False
    return safe


def visualize_safe_map(safe):
    """Debug colouring: (0,10] m through JET, (10,150] m through HOT, everything else black."""
    d = np.asarray(safe, dtype=np.float64)
    near = (d > 0) & (d <= NEAR_BAND_M)
    mid = (d > NEAR_BAND_M) & (d <= MID_BAND_M)

    near_u8 = np.zeros(d.shape, np.uint8)
    mid_u8 = np.zeros(d.shape, np.uint8)
    near_u8[near] = np.clip(d[near] / NEAR_BAND_M * 255.0, 0, 255).astype(np.uint8)
    mid_u8[mid] = np.clip((d[mid] - NEAR_BAND_M) / (MID_BAND_M - NEAR_BAND_M) * 255.0, 0, 255).astype(np.uint8)

    near_color = cv2.applyColorMap(near_u8, cv2.COLORMAP_JET)
    mid_color = cv2.applyColorMap(mid_u8, cv2.COLORMAP_HOT)

    out = np.zeros(d.shape + (3,), np.uint8)
    out[near] = near_color[near]
    out[mid] = mid_color[mid]
    return out
