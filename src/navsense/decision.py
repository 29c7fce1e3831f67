# src/navsense/decision.py
from dataclasses import dataclass

import numpy as np

from .io_types import HazardResult, Sector

OBSTACLE_ITEM = "obstacle"

DIRECTION_ASSETS = {
    Sector.LEFT: "left.mp3",
    Sector.RIGHT: "right.mp3",
    Sector.FRONT: "forward",
}
OBSTACLE_ASSET = "obstacle.mp3"
FIXED_END_ASSET = "fixed_end.mp3"
OBSTACLE_CAUTION_ASSET = "obstacle_caution.mp3"


def distance_band(distance_m):
    """Whole-metre band spoken to the user, clamped to 1..5."""
    return int(clamp(distance_m, 1.0, 5.0))


@dataclass(frozen=True)
class Alert:
    sector: Sector
    band_m: int
    item: str
    distance_m: float

    @property
    def sector_code(self):
        return self.sector.value

    @property
    def is_obstacle(self):
        return self.item == OBSTACLE_ITEM

    def asset_names(self):
        """Phrase clips in speaking order: direction, distance, item, closing phrase(s)."""
        files = [DIRECTION_ASSETS[self.sector], f"{self.band_m}m.mp3"]
        files.append(OBSTACLE_ASSET if self.is_obstacle else f"{self.item}.mp3")
        files.append(FIXED_END_ASSET)
        if self.is_obstacle:
            files.append(OBSTACLE_CAUTION_ASSET)
        return files

    def as_dict(self):
        return {
            "sector": self.sector_code,
            "band_m": self.band_m,
            "item": self.item,
            "distance_m": float(self.distance_m),
        }


def build_alert(located, item=OBSTACLE_ITEM):
    """
    `located` is a HazardResult or a (distance, Sector) pair from the target locator.
    Returns None when there is nothing to say (no result or a non-positive distance).
    """
    if located is None:
        return None
    if isinstance(located, HazardResult):
        dist, sector = located.distance_m, located.sector
    else:
        dist, sector = located
    dist = float(dist)
    if not np.isfinite(dist) or dist <= 0:
        return None
    return Alert(sector, distance_band(dist), item, dist)


def clamp(x, lo, hi):
    return lo if x < lo else (hi if x > hi else float(x))
