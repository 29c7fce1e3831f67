# src/navsense/bbox.py
import numpy as np

from .io_types import BoundingBox


def scale_boxes(boxes, from_size, to_size):
    """
    Rescale boxes between two square resolutions (e.g. detector 640 -> depth 320).
    Coordinates are truncated toward zero; nothing is clamped.
    Accepts BoundingBox values or plain [x1,y1,x2,y2] sequences and returns the same kind.
    """
    if from_size <= 0:
        raise ValueError(f"from_size must be positive, got {from_size}")
    scale = float(to_size) / float(from_size)
    out = []
    for b in boxes:
        if isinstance(b, BoundingBox):
            out.append(BoundingBox(*[int(v * scale) for v in b.as_list()]))
        else:
            out.append([int(v * scale) for v in b])
    return out


def iou_xyxy(a, b):
    ax1, ay1, ax2, ay2 = a
    bx1, by1, bx2, by2 = b
    area_a = max(0.0, ax2 - ax1) * max(0.0, ay2 - ay1)
    area_b = max(0.0, bx2 - bx1) * max(0.0, by2 - by1)
    iw = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    ih = max(0.0, min(ay2, by2) - max(ay1, by1))
    inter = iw * ih
    union = area_a + area_b - inter
    if union <= 0:
        return 0.0
    return float(inter / union)


def nms_numpy(boxes, scores, iou_thresh=0.2):
    """
    Greedy NMS. boxes [N,4] xyxy, scores [N].
    Returns indices of kept boxes, highest score first.
    A candidate is dropped when its IoU with a kept box exceeds iou_thresh.
    """
    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    idx = np.argsort(-scores, kind="stable")
    keep = []
    while len(idx) > 0:
        i = int(idx[0])
        keep.append(i)
        if len(idx) == 1:
            break
        rest = idx[1:]
        ious = np.array([iou_xyxy(boxes[i], boxes[j]) for j in rest])
        idx = rest[ious <= iou_thresh]
    return keep
