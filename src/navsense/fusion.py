# src/navsense/fusion.py
import logging

import numpy as np

from .bbox import scale_boxes
from .io_types import BoundingBox, HazardResult, Sector

log = logging.getLogger(__name__)

GRID_STEP = 3
HAZARD_CUTOFF_M = 3.0


def sector_for(center_x, frame_width):
    """Thirds of the frame; a centre exactly on a boundary belongs to the band on its right."""
    third = frame_width // 3
    if center_x < third:
        return Sector.LEFT
    if center_x < third * 2:
        return Sector.FRONT
    return Sector.RIGHT


def _as_box(box):
    """BoundingBox for `box`, or None when a plain [x1,y1,x2,y2] sequence is inverted."""
    if isinstance(box, BoundingBox):
        return box
    x1, y1, x2, y2 = [int(v) for v in box]
    if x2 < x1 or y2 < y1:
        return None
    return BoundingBox(x1, y1, x2, y2)


def _sample(grid, box, grid_step):
    """Strided samples of `grid` inside box rows y1..y2-1, cols x1..x2-1 (clipped to the grid)."""
    h, w = grid.shape[:2]
    y1, y2 = max(0, box.y1), min(h, box.y2)
    x1, x2 = max(0, box.x1), min(w, box.x2)
    if y2 <= y1 or x2 <= x1:
        return grid[0:0, 0:0]
    return grid[y1:y2:grid_step, x1:x2:grid_step]


def _check_step(grid_step):
    if grid_step <= 0:
        raise ValueError(f"grid_step must be positive, got {grid_step}")


def nearest_distance(depth_m, box, grid_step=GRID_STEP):
    """
    Minimum depth on a subsampled grid inside `box`, plus the box's sector.
    Returns (distance, Sector) or None when the box covers no pixel.
    """
    _check_step(grid_step)
    box = _as_box(box)
    if box is None:
        return None
    patch = _sample(depth_m, box, grid_step)
    if patch.size == 0:
        return None
    return float(np.min(patch)), sector_for(box.center_x, depth_m.shape[1])


def check_hazard(depth_m, safe_map, boxes, grid_step=GRID_STEP, cutoff_m=HAZARD_CUTOFF_M):
    """
    Nearest box that pokes into the open space described by `safe_map`.
    A pixel qualifies when its absolute depth is strictly below the safe distance there.
    Returns [] or a single-element list [HazardResult]; if the nearest qualifying
    distance is beyond `cutoff_m` the whole frame counts as clear.
    """
    _check_step(grid_step)
    if depth_m.shape != safe_map.shape:
        raise ValueError(f"Depth map {depth_m.shape} and safe map {safe_map.shape} differ")

    closest = None
    for idx, b in enumerate(boxes):
        box = _as_box(b)
        if box is None:
            continue
        d = _sample(depth_m, box, grid_step)
        s = _sample(safe_map, box, grid_step)
        closer = d[d < s]
        if closer.size == 0:
            continue
        min_dist = float(np.min(closer))
        if closest is None or min_dist < closest.distance_m:
            closest = HazardResult(idx, min_dist, sector_for(box.center_x, depth_m.shape[1]))

    if closest is None:
        return []
    if closest.distance_m > cutoff_m:
        log.debug("Nearest anomaly at %.2fm is beyond the %.1fm cutoff", closest.distance_m, cutoff_m)
        return []
    return [closest]


def locate_target(depth_m, box, grid_step=GRID_STEP):
    """How far, and in which direction, is this one box."""
    return nearest_distance(depth_m, box, grid_step)


def locate_text_target(depth_m, text_boxes, target_index, from_size, to_size, grid_step=GRID_STEP):
    """
    Locate the text region chosen by the keyword matcher.
    `text_boxes` are in OCR input space (`from_size`); the depth map is `to_size`.
    A negative or out-of-range index means "no match".
    """
    if target_index is None or not 0 <= target_index < len(text_boxes):
        return None
    target = scale_boxes([text_boxes[target_index]], from_size, to_size)[0]
    return locate_target(depth_m, target, grid_step)
