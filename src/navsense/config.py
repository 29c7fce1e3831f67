# src/navsense/config.py
"""
Pipeline configuration.

Defaults match the reference deployment (320px depth, 640px detector/OCR, camera at 1.3 m).
A YAML file may override any subset of keys; unknown keys are rejected.
"""
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional

import yaml

from .io_types import CalibrationPoint, ConfigError
from .safe_map import CameraMount


@dataclass
class PipelineConfig:
    # Resolutions (square)
    depth_size: int = 320
    detect_size: int = 640
    ocr_size: int = 640

    # Detector
    num_classes: int = 13
    num_cells: int = 8400
    conf_thresh: float = 0.01
    nms_thresh: float = 0.2
    labels: Optional[List[str]] = None

    # Fusion
    grid_step: int = 3
    hazard_cutoff_m: float = 3.0

    # Depth calibration: (x, y, metres) in depth-map pixels
    calibration_points: List[CalibrationPoint] = field(default_factory=lambda: [
        CalibrationPoint(128, 0, 7.0),
        CalibrationPoint(128, 255, 1.75),
    ])

    mount: CameraMount = field(default_factory=CameraMount)

    # Models
    midas_type: str = "MiDaS_small"
    yolo_weights: str = "runs/detect/obstacles/weights/best.pt"  # 13-class obstacle model
    device: Optional[str] = None

    # Orchestration
    buffer_cache_size: int = 10

    def validate(self):
        for name in ("depth_size", "detect_size", "ocr_size", "num_classes", "num_cells",
                     "grid_step", "buffer_cache_size"):
            _check_number(self, name, int)
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("conf_thresh", "nms_thresh", "hazard_cutoff_m"):
            _check_number(self, name, float)
        if not 0.0 <= self.conf_thresh <= 1.0:
            raise ConfigError(f"conf_thresh must be in [0, 1], got {self.conf_thresh}")
        if not 0.0 <= self.nms_thresh <= 1.0:
            raise ConfigError(f"nms_thresh must be in [0, 1], got {self.nms_thresh}")
        if self.hazard_cutoff_m <= 0:
            raise ConfigError(f"hazard_cutoff_m must be positive, got {self.hazard_cutoff_m}")
        if len(self.calibration_points) < 2:
            raise ConfigError(f"Need at least 2 calibration points, got {len(self.calibration_points)}")
        for p in self.calibration_points:
            if not (0 <= p.pixel_x < self.depth_size and 0 <= p.pixel_y < self.depth_size):
                raise ConfigError(f"Calibration point {p} is outside the {self.depth_size}px depth map")
        if self.labels is not None and len(self.labels) != self.num_classes:
            raise ConfigError(f"{len(self.labels)} labels given for {self.num_classes} classes")
        return self


def _check_number(cfg, name, kind):
    value = getattr(cfg, name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if kind is int and not float(value).is_integer():
        raise ConfigError(f"{name} must be a whole number, got {value!r}")


def _points_from(raw):
    pts = []
    for item in raw or []:
        try:
            if isinstance(item, dict):
                pts.append(CalibrationPoint(int(item["x"]), int(item["y"]), float(item["depth_m"])))
            else:
                x, y, d = item
                pts.append(CalibrationPoint(int(x), int(y), float(d)))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Bad calibration point {item!r}: {e}") from e
    return pts


def config_from_dict(data):
    data = dict(data or {})
    cfg = PipelineConfig()
    known = {f.name for f in fields(PipelineConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")

    if "calibration_points" in data:
        data["calibration_points"] = _points_from(data["calibration_points"])
    if "mount" in data:
        mount_keys = {f.name for f in fields(CameraMount)}
        bad = set(data["mount"] or {}) - mount_keys
        if bad:
            raise ConfigError(f"Unknown mount keys: {sorted(bad)}")
        try:
            data["mount"] = CameraMount(**{k: float(v) for k, v in (data["mount"] or {}).items()})
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Bad mount value: {e}") from e

    return replace(cfg, **data).validate()


def load_config(path=None):
    """Read a YAML file on top of the defaults. None -> defaults."""
    if path is None:
        return PipelineConfig().validate()
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}") from e
    if data is not None and not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")
    return config_from_dict(data)
