# src/navsense/detector.py
import logging

import cv2
import numpy as np

from .bbox import nms_numpy
from .io_types import BoundingBox, Detection, LetterboxParams, MalformedTensorError

log = logging.getLogger(__name__)

# ----------------- Defaults -----------------
INPUT_SIZE = 640
NUM_CLASSES = 13
TOTAL_CELLS = 8400
CONF_THRESH = 0.01     # permissive on purpose, NMS does the real filtering
NMS_THRESH = 0.2
# --------------------------------------------


def letterbox_params(orig_w, orig_h, input_size=INPUT_SIZE):
    """Aspect-preserving fit of (orig_w, orig_h) into a centred square canvas."""
    if orig_w <= 0 or orig_h <= 0:
        raise ValueError(f"Image size must be positive, got {orig_w}x{orig_h}")
    scale = min(input_size / float(orig_w), input_size / float(orig_h))
    nw = int(orig_w * scale)
    nh = int(orig_h * scale)
    pad_x = (input_size - nw) / 2.0
    pad_y = (input_size - nh) / 2.0
    return LetterboxParams(scale, pad_x, pad_y, int(orig_w), int(orig_h), int(input_size))


def letterbox_image(image, input_size=INPUT_SIZE, out=None):
    """
    Resize preserving aspect ratio and paste onto a black square canvas.
    `out` may be a reusable (input_size, input_size, C) uint8 buffer.
    Returns (canvas, LetterboxParams).
    """
    h, w = image.shape[:2]
    params = letterbox_params(w, h, input_size)
    nw, nh = int(w * params.scale), int(h * params.scale)
    resized = cv2.resize(image, (nw, nh), interpolation=cv2.INTER_LINEAR)

    shape = (input_size, input_size) + image.shape[2:]
    if out is None or out.shape != shape:
        out = np.zeros(shape, dtype=image.dtype)
    else:
        out[...] = 0
    x0, y0 = int(params.pad_x), int(params.pad_y)
    out[y0:y0 + nh, x0:x0 + nw] = resized
    return out, params


def _check_raw(raw, num_classes=None, num_cells=None):
    a = np.asarray(raw, dtype=np.float32)
    if a.ndim == 3 and a.shape[0] == 1:
        a = a[0]
    if a.ndim != 2:
        raise MalformedTensorError(f"Expected [4+C, N] output, got shape {np.shape(raw)}")
    rows, cells = a.shape
    if rows < 5:
        raise MalformedTensorError(f"Need 4 box rows and at least one class row, got {rows}")
    if num_classes is not None and rows != 4 + num_classes:
        raise MalformedTensorError(f"Expected {4 + num_classes} rows for {num_classes} classes, got {rows}")
    if num_cells is not None and cells != num_cells:
        raise MalformedTensorError(f"Expected {num_cells} cells, got {cells}")
    return a


def decode_raw_output(raw, params, conf_thresh=CONF_THRESH, num_classes=None, num_cells=None):
    """
    Per-cell decode of an anchor-free YOLO head.
    raw: [4+C, N] (or [1, 4+C, N]) with rows cx, cy, w, h in letterboxed pixels, then class scores.
    Returns (boxes [M,4] float32 in original-image pixels, scores [M], class_ids [M]).
    """
    a = _check_raw(raw, num_classes, num_cells)
    cls_scores = a[4:]
    best_c = np.argmax(cls_scores, axis=0)
    best_p = cls_scores[best_c, np.arange(a.shape[1])]
    keep = best_p >= conf_thresh

    cx, cy, w, h = a[0, keep], a[1, keep], a[2, keep], a[3, keep]
    corners = np.stack([cx - w / 2.0, cy - h / 2.0, cx + w / 2.0, cy + h / 2.0], axis=1)

    # letterboxed -> original image
    corners[:, [0, 2]] = np.clip((corners[:, [0, 2]] - params.pad_x) / params.scale, 0.0, params.orig_w)
    corners[:, [1, 3]] = np.clip((corners[:, [1, 3]] - params.pad_y) / params.scale, 0.0, params.orig_h)
    return corners.astype(np.float32), best_p[keep].astype(np.float32), best_c[keep].astype(int)


def decode_detections(raw, params, conf_thresh=CONF_THRESH, iou_thresh=NMS_THRESH,
                      num_classes=None, num_cells=None, labels=None):
    boxes, scores, class_ids = decode_raw_output(raw, params, conf_thresh, num_classes, num_cells)
    if len(scores) == 0:
        return []
    # suppress on the truncated integer boxes that are returned
    boxes = np.trunc(boxes)
    keep = nms_numpy(boxes, scores, iou_thresh=iou_thresh)

    out = []
    for i in keep:
        c = int(class_ids[i])
        label = labels[c] if labels is not None and c < len(labels) else f"Class{c}"
        x1, y1, x2, y2 = [int(v) for v in boxes[i]]
        if x2 < x1 or y2 < y1:
            continue  # negative width/height from the head
        out.append(Detection(BoundingBox(x1, y1, x2, y2), c, float(scores[i]), label))
    return out


def decode(raw, params, conf_thresh=CONF_THRESH, iou_thresh=NMS_THRESH, num_classes=None, num_cells=None):
    """Raw detector output -> NMS-filtered boxes in original-image pixel space."""
    dets = decode_detections(raw, params, conf_thresh, iou_thresh, num_classes, num_cells)
    return [d.box for d in dets]


class YoloDecoder:
    """Decode+NMS with configured thresholds. A malformed tensor yields no detections."""

    def __init__(self, conf_thresh=CONF_THRESH, iou_thresh=NMS_THRESH,
                 num_classes=NUM_CLASSES, num_cells=TOTAL_CELLS, labels=None):
        self.conf_thresh = conf_thresh
        self.iou_thresh = iou_thresh
        self.num_classes = num_classes
        self.num_cells = num_cells
        self.labels = labels

    def detect(self, raw, params):
        try:
            dets = decode_detections(raw, params, self.conf_thresh, self.iou_thresh,
                                     self.num_classes, self.num_cells, self.labels)
        except MalformedTensorError as e:
            log.warning("Dropping detector output: %s", e)
            return []
        log.debug("NMS kept %d detections", len(dets))
        return dets
