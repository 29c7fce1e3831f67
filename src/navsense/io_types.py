# src/navsense/io_types.py
from dataclasses import dataclass
from enum import Enum
from typing import List


class ConfigError(ValueError):
    """Setup mistake detected at construction time (bad resolution, too few calibration points...)."""


class MalformedTensorError(ValueError):
    """Raw detector output does not have the expected [4+C, N] layout."""


class Sector(Enum):
    LEFT = "L"
    FRONT = "F"
    RIGHT = "R"


@dataclass(frozen=True)
class BoundingBox:
    x1: int
    y1: int
    x2: int
    y2: int

    def __post_init__(self):
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(f"Inverted box: {self.as_list()}")

    @property
    def center_x(self) -> int:
        return (self.x1 + self.x2) // 2

    def as_list(self) -> List[int]:
        return [self.x1, self.y1, self.x2, self.y2]


@dataclass(frozen=True)
class Detection:
    box: BoundingBox
    class_index: int
    score: float           # 0..1
    label: str


@dataclass(frozen=True)
class CalibrationPoint:
    pixel_x: int
    pixel_y: int
    real_depth_m: float

    def __post_init__(self):
        if not self.real_depth_m > 0:
            raise ValueError(f"Calibration depth must be positive, got {self.real_depth_m}")


@dataclass(frozen=True)
class HazardResult:
    box_index: int
    distance_m: float
    sector: Sector


@dataclass(frozen=True)
class LetterboxParams:
    scale: float
    pad_x: float
    pad_y: float
    orig_w: int
    orig_h: int
    input_size: int
