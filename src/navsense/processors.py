# src/navsense/processors.py
"""
Model-backed frame processors.

Every stage that turns a camera frame into a model output implements FrameProcessor:
`process(frame)` plus `close()` to release the model. The concrete variant is chosen
when the pipeline is built, never per call.
"""
import abc
import logging
import time

import cv2
import numpy as np
import torch
from ultralytics import YOLO

from .detector import INPUT_SIZE, letterbox_image

log = logging.getLogger(__name__)


def default_device():
    return "cuda" if torch.cuda.is_available() else "cpu"


class FrameProcessor(abc.ABC):

    @abc.abstractmethod
    def process(self, frame_bgr):
        ...

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class MidasDepthProcessor(FrameProcessor):
    """
    MiDaS relative depth, resized to an output_size x output_size grid.
    model_type: 'MiDaS_small', 'DPT_Hybrid', 'DPT_Large'
    """

    def __init__(self, output_size=320, model_type="MiDaS_small", device=None):
        self.output_size = int(output_size)
        self.model_type = model_type
        self.device = device or default_device()
        log.info("Loading MiDaS model: %s on %s", model_type, self.device)
        try:
            self.model = torch.hub.load("intel-isl/MiDaS", model_type)
            transforms = torch.hub.load("intel-isl/MiDaS", "transforms")
        except Exception as e:
            raise RuntimeError(f"Failed to load MiDaS model {model_type}: {e}") from e
        self.model.to(self.device).eval()
        self.transform = transforms.dpt_transform if "DPT" in model_type else transforms.small_transform

    def process(self, frame_bgr):
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        batch = self.transform(rgb).to(self.device)
        t0 = time.perf_counter()
        with torch.inference_mode():
            pred = self.model(batch)
            depth = torch.nn.functional.interpolate(
                pred.unsqueeze(1), size=(self.output_size, self.output_size),
                mode="bicubic", align_corners=False
            ).squeeze().cpu().numpy()
        log.debug("MiDaS inference: %.1f ms", (time.perf_counter() - t0) * 1000.0)
        return depth.astype(np.float32)

    def close(self):
        self.model = None
        if self.device == "cuda":
            torch.cuda.empty_cache()


class YoloRawProcessor(FrameProcessor):
    """
    Runs an ultralytics YOLO network on a letterboxed frame and returns the raw
    head output [4+C, N] together with the letterbox geometry, leaving decode
    and NMS to navsense.detector.
    """

    def __init__(self, weights="runs/detect/obstacles/weights/best.pt", input_size=INPUT_SIZE, device=None):
        self.input_size = int(input_size)
        self.device = device or default_device()
        log.info("Loading YOLO weights: %s on %s", weights, self.device)
        try:
            self.yolo = YOLO(weights)
        except Exception as e:
            raise RuntimeError(f"Failed to load YOLO weights {weights}: {e}") from e
        self.net = self.yolo.model.to(self.device).eval()
        names = getattr(self.net, "names", None)
        if isinstance(names, dict):
            self.labels = [names[i] for i in range(len(names))]
        else:
            self.labels = list(names) if names else None

    def process(self, frame_bgr):
        canvas, params = letterbox_image(frame_bgr, self.input_size)
        rgb = cv2.cvtColor(canvas, cv2.COLOR_BGR2RGB)
        x = torch.from_numpy(rgb).permute(2, 0, 1).float().div(255.0).unsqueeze(0).to(self.device)
        t0 = time.perf_counter()
        with torch.inference_mode():
            out = self.net(x)
        log.debug("YOLO inference: %.1f ms", (time.perf_counter() - t0) * 1000.0)
        y = out[0] if isinstance(out, (list, tuple)) else out
        return y[0].detach().cpu().numpy(), params

    def close(self):
        self.net = None
        self.yolo = None
        if self.device == "cuda":
            torch.cuda.empty_cache()
