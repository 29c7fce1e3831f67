# src/navsense/pipeline.py
"""
Per-frame orchestration.

NavigationPipeline runs the core steps for one frame:
    raw depth + raw detector output
      -> decode + NMS -> rescale to depth space
      -> absolute depth -> hazard check against the safe map
      -> (no hazard) text target lookup
FrameLoop feeds it from a single worker thread with keep-only-latest backpressure.
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from .bbox import scale_boxes
from .calibration import CalibrationStatus, calibrate_with_status
from .config import PipelineConfig
from .decision import OBSTACLE_ITEM, Alert, build_alert
from .detector import YoloDecoder
from .fusion import check_hazard, locate_text_target
from .io_types import BoundingBox, ConfigError, Detection, HazardResult
from .safe_map import build_safe_map

log = logging.getLogger(__name__)


class BufferCache:
    """Bounded LRU of reusable image buffers keyed by (shape, dtype)."""

    def __init__(self, max_entries=10):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.max_entries = max_entries
        self.evictions = 0
        self._buffers = OrderedDict()
        self._lock = threading.Lock()

    def get(self, shape, dtype=np.uint8):
        key = (tuple(int(s) for s in shape), np.dtype(dtype).str)
        with self._lock:
            buf = self._buffers.get(key)
            if buf is not None:
                self._buffers.move_to_end(key)
                return buf
            buf = np.zeros(key[0], dtype=dtype)
            self._buffers[key] = buf
            while len(self._buffers) > self.max_entries:
                self._buffers.popitem(last=False)
                self.evictions += 1
            return buf

    def __len__(self):
        return len(self._buffers)


def resize_square(frame, size, cache=None):
    """Stretch a frame to size x size, reusing a cached buffer when available."""
    shape = (size, size) + frame.shape[2:]
    if cache is None:
        return cv2.resize(frame, (size, size), interpolation=cv2.INTER_AREA)
    dst = cache.get(shape, frame.dtype)
    return cv2.resize(frame, (size, size), dst=dst, interpolation=cv2.INTER_AREA)


@dataclass
class FrameResult:
    frame_id: int
    detections: List[Detection]
    boxes: List[BoundingBox]               # depth-map space
    depth_m: np.ndarray
    calibration: CalibrationStatus
    hazard: Optional[HazardResult] = None
    target: Optional[tuple] = None         # (distance_m, Sector)
    target_box: Optional[BoundingBox] = None
    target_text: Optional[str] = None
    alert: Optional[Alert] = None
    elapsed_s: float = 0.0

    def as_dict(self):
        out = {
            "frame_id": self.frame_id,
            "calibration": self.calibration.value,
            "boxes": [b.as_list() for b in self.boxes],
            "detections": [{"label": d.label, "class_index": d.class_index,
                            "score": round(d.score, 4), "box": d.box.as_list()} for d in self.detections],
            "hazard": None,
            "target": None,
            "alert": self.alert.as_dict() if self.alert else None,
            "elapsed_s": round(self.elapsed_s, 4),
        }
        if self.hazard is not None:
            out["hazard"] = {"box_index": self.hazard.box_index,
                             "distance_m": float(self.hazard.distance_m),
                             "sector": self.hazard.sector.value}
        if self.target is not None:
            out["target"] = {"distance_m": float(self.target[0]), "sector": self.target[1].value,
                             "box": self.target_box.as_list() if self.target_box else None,
                             "text": self.target_text}
        return out


def _unpack_target(found):
    if found is None:
        return [], -1, None
    if len(found) == 3:
        boxes, idx, text = found
    else:
        (boxes, idx), text = found, None
    return list(boxes), (-1 if idx is None else int(idx)), text


class NavigationPipeline:
    """
    Owns the immutable per-process state (config, safe map, decoder) and the
    frame processors. `analyze` is pure in its inputs; `process_frame` adds model inference.
    """

    def __init__(self, config=None, depth_processor=None, detector_processor=None,
                 target_finder=None, buffer_cache=None):
        self.config = (config or PipelineConfig()).validate()
        self.safe_map = build_safe_map(self.config.depth_size, self.config.mount)
        labels = self.config.labels or getattr(detector_processor, "labels", None)
        if labels is not None and len(labels) != self.config.num_classes:
            raise ConfigError(f"Detector has {len(labels)} classes but num_classes is {self.config.num_classes}")
        self.decoder = YoloDecoder(self.config.conf_thresh, self.config.nms_thresh,
                                   self.config.num_classes, self.config.num_cells, labels)
        self.depth_processor = depth_processor
        self.detector_processor = detector_processor
        self.target_finder = target_finder
        self.buffer_cache = buffer_cache or BufferCache(self.config.buffer_cache_size)
        self._frame_counter = 0

    def analyze(self, relative_depth, raw_detections, letterbox, target_finder=None, frame_id=None):
        """
        relative_depth: depth_size x depth_size relative map from the depth model.
        raw_detections: [4+C, N] detector output for a detect_size x detect_size input.
        target_finder: optional zero-arg callable -> (ocr_boxes, index[, text]); only
                       consulted when no hazard was found.
        """
        cfg = self.config
        t0 = time.perf_counter()
        if frame_id is None:
            frame_id = self._frame_counter
            self._frame_counter += 1

        detections = self.decoder.detect(raw_detections, letterbox)
        boxes = scale_boxes([d.box for d in detections], cfg.detect_size, cfg.depth_size)

        depth_m, status = calibrate_with_status(relative_depth, cfg.calibration_points)
        result = FrameResult(frame_id, detections, boxes, depth_m, status)

        if status is not CalibrationStatus.OK:
            log.warning("Frame %d: depth calibration failed (%s), skipping fusion", frame_id, status.value)
            result.elapsed_s = time.perf_counter() - t0
            return result
        if depth_m.shape != self.safe_map.shape:
            raise ValueError(f"Depth map {depth_m.shape} does not match safe map {self.safe_map.shape}")

        hazards = check_hazard(depth_m, self.safe_map, boxes, cfg.grid_step, cfg.hazard_cutoff_m)
        if hazards:
            result.hazard = hazards[0]
            result.alert = build_alert(result.hazard, OBSTACLE_ITEM)
        elif target_finder is not None:
            ocr_boxes, idx, text = _unpack_target(target_finder())
            located = locate_text_target(depth_m, ocr_boxes, idx, cfg.ocr_size, cfg.depth_size, cfg.grid_step)
            if located is not None:
                result.target = located
                scaled = scale_boxes([ocr_boxes[idx]], cfg.ocr_size, cfg.depth_size)[0]
                result.target_box = scaled if isinstance(scaled, BoundingBox) else BoundingBox(*scaled)
                result.target_text = text
                result.alert = build_alert(located, text or "target")

        result.elapsed_s = time.perf_counter() - t0
        return result

    def process_frame(self, frame_bgr, frame_id=None):
        if self.depth_processor is None or self.detector_processor is None:
            raise RuntimeError("process_frame needs both a depth and a detector processor")
        cfg = self.config
        for_yolo = resize_square(frame_bgr, cfg.detect_size, self.buffer_cache)
        relative = self.depth_processor.process(frame_bgr)
        raw, letterbox = self.detector_processor.process(for_yolo)

        finder = None
        if self.target_finder is not None:
            for_ocr = resize_square(frame_bgr, cfg.ocr_size, self.buffer_cache)
            finder = lambda: self.target_finder(for_ocr)
        return self.analyze(relative, raw, letterbox, target_finder=finder, frame_id=frame_id)

    def close(self):
        for p in (self.depth_processor, self.detector_processor):
            if p is not None:
                p.close()


def build_pipeline(config, target_finder=None):
    """Pipeline with MiDaS depth and YOLO detector processors built from config."""
    from .processors import MidasDepthProcessor, YoloRawProcessor

    cache = BufferCache(config.buffer_cache_size)
    depth = MidasDepthProcessor(config.depth_size, config.midas_type, config.device)
    yolo = YoloRawProcessor(config.yolo_weights, config.detect_size, config.device)
    return NavigationPipeline(config, depth, yolo, target_finder, buffer_cache=cache)


class FrameLoop:
    """
    One worker thread, one pending-frame slot. Submitting while busy replaces the
    pending frame (older one is dropped); a result whose frame was superseded
    before it finished is discarded.
    """

    def __init__(self, process_fn, on_result=None):
        self.process_fn = process_fn
        self.on_result = on_result
        self.dropped = 0
        self.discarded = 0
        self.processed = 0
        self._cond = threading.Condition()
        self._pending = None
        self._latest_id = -1
        self._running = False
        self._busy = False
        self._thread = None

    def start(self):
        with self._cond:
            if self._running:
                return self
            self._running = True
        self._thread = threading.Thread(target=self._worker, name="navsense-frame-loop", daemon=True)
        self._thread.start()
        return self

    def submit(self, frame):
        with self._cond:
            self._latest_id += 1
            if self._pending is not None:
                self.dropped += 1
            self._pending = (self._latest_id, frame)
            self._cond.notify()
            return self._latest_id

    def _worker(self):
        while True:
            with self._cond:
                while self._running and self._pending is None:
                    self._cond.wait()
                if not self._running:
                    return
                frame_id, frame = self._pending
                self._pending = None
                self._busy = True
            try:
                result = self.process_fn(frame, frame_id)
            except Exception:
                log.exception("Frame %d failed", frame_id)
                result = None
            with self._cond:
                stale = frame_id < self._latest_id
                deliver = self._running and not stale
            if result is not None and deliver and self.on_result is not None:
                try:
                    self.on_result(result)
                except Exception:
                    log.exception("Result callback failed for frame %d", frame_id)
            with self._cond:
                if stale:
                    self.discarded += 1
                elif result is not None:
                    self.processed += 1
                self._busy = False
                self._cond.notify_all()

    def wait_idle(self, timeout=None):
        """Block until no frame is pending or in flight. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._pending is not None or self._busy:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._cond.wait(remaining)
        return True

    def stop(self, timeout=None):
        with self._cond:
            self._running = False
            self._pending = None
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
