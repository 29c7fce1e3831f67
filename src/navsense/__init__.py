"""
navsense: depth + detection fusion for walking-assistance hazard alerts.

Model-free core (numpy / OpenCV):
    bbox, calibration, safe_map, detector, fusion, decision, config, pipeline
Model-backed processors (torch / ultralytics) live in navsense.processors and are
imported only when a pipeline is built from models.
"""
from .bbox import iou_xyxy, nms_numpy, scale_boxes
from .calibration import CalibrationStatus, calibrate, calibrate_with_status
from .config import PipelineConfig, load_config
from .decision import Alert, build_alert, distance_band
from .detector import YoloDecoder, decode, decode_detections, letterbox_params
from .fusion import check_hazard, locate_target, locate_text_target, nearest_distance, sector_for
from .io_types import (
    BoundingBox,
    CalibrationPoint,
    ConfigError,
    Detection,
    HazardResult,
    LetterboxParams,
    MalformedTensorError,
    Sector,
)
from .safe_map import CameraMount, build_safe_map, visualize_safe_map

__all__ = [
    "Alert",
    "BoundingBox",
    "CalibrationPoint",
    "CalibrationStatus",
    "CameraMount",
    "ConfigError",
    "Detection",
    "HazardResult",
    "LetterboxParams",
    "MalformedTensorError",
    "PipelineConfig",
    "Sector",
    "YoloDecoder",
    "build_alert",
    "build_safe_map",
    "calibrate",
    "calibrate_with_status",
    "check_hazard",
    "decode",
    "decode_detections",
    "distance_band",
    "iou_xyxy",
    "letterbox_params",
    "load_config",
    "locate_target",
    "locate_text_target",
    "nearest_distance",
    "nms_numpy",
    "scale_boxes",
    "sector_for",
    "visualize_safe_map",
]
