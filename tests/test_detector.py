import numpy as np
import pytest

from navsense.bbox import scale_boxes
from navsense.detector import (
    YoloDecoder,
    decode,
    decode_detections,
    decode_raw_output,
    letterbox_image,
    letterbox_params,
)
from navsense.io_types import BoundingBox, MalformedTensorError

NUM_CLASSES = 13
CELLS = 8400


def _raw(cells=CELLS, num_classes=NUM_CLASSES, background=0.001):
    raw = np.zeros((4 + num_classes, cells), np.float32)
    raw[4:] = background
    return raw


def _put(raw, cell, cx, cy, w, h, cls, score):
    raw[0:4, cell] = [cx, cy, w, h]
    raw[4 + cls, cell] = score


def test_letterbox_square_is_identity():
    p = letterbox_params(640, 640, 640)
    assert (p.scale, p.pad_x, p.pad_y) == (1.0, 0.0, 0.0)


def test_letterbox_wide_image_pads_vertically():
    p = letterbox_params(1280, 720, 640)
    assert p.scale == pytest.approx(0.5)
    assert p.pad_x == 0.0
    assert p.pad_y == pytest.approx((640 - 360) / 2.0)


def test_letterbox_image_canvas():
    img = np.full((100, 200, 3), 255, np.uint8)
    canvas, p = letterbox_image(img, 64)
    assert canvas.shape == (64, 64, 3)
    assert p.scale == pytest.approx(0.32)
    top = int(p.pad_y)
    assert not canvas[:top].any()
    assert canvas[32, 32].all()


def test_letterbox_image_reuses_buffer():
    img = np.full((50, 50, 3), 7, np.uint8)
    buf = np.ones((64, 64, 3), np.uint8)
    canvas, _ = letterbox_image(img, 64, out=buf)
    assert canvas is buf
    assert (canvas == 7).all()


def test_end_to_end_single_detection_then_rescale():
    raw = _raw()
    _put(raw, 1234, 320.0, 320.0, 100.0, 200.0, cls=2, score=0.9)
    params = letterbox_params(640, 640, 640)

    dets = decode_detections(raw, params, num_classes=NUM_CLASSES, num_cells=CELLS)
    assert len(dets) == 1
    assert dets[0].class_index == 2
    assert dets[0].score == pytest.approx(0.9)
    assert dets[0].label == "Class2"
    assert dets[0].box == BoundingBox(270, 220, 370, 420)

    assert scale_boxes([dets[0].box], 640, 320) == [BoundingBox(135, 110, 185, 210)]


def test_batched_output_is_accepted():
    raw = _raw()
    _put(raw, 0, 100.0, 100.0, 20.0, 20.0, cls=0, score=0.5)
    assert decode(raw[None], letterbox_params(640, 640)) == [BoundingBox(90, 90, 110, 110)]


def test_below_threshold_yields_nothing():
    assert decode(_raw(), letterbox_params(640, 640)) == []


def test_de_letterbox_and_clamp():
    # 1280x720 source -> scale 0.5, pad_y 140
    params = letterbox_params(1280, 720, 640)
    raw = _raw()
    _put(raw, 5, 320.0, 320.0, 100.0, 100.0, cls=1, score=0.8)
    _put(raw, 9, 630.0, 150.0, 40.0, 40.0, cls=3, score=0.7)   # spills outside the image
    boxes, scores, classes = decode_raw_output(raw, params)
    order = np.argsort(-scores)
    np.testing.assert_allclose(boxes[order[0]], [540.0, 260.0, 740.0, 460.0])
    np.testing.assert_allclose(boxes[order[1]], [1220.0, 0.0, 1280.0, 60.0])
    assert list(classes[order]) == [1, 3]


def test_overlapping_cells_are_suppressed():
    raw = _raw()
    _put(raw, 10, 200.0, 200.0, 100.0, 100.0, cls=4, score=0.6)
    _put(raw, 11, 205.0, 202.0, 100.0, 100.0, cls=4, score=0.8)
    _put(raw, 12, 500.0, 500.0, 50.0, 50.0, cls=7, score=0.3)
    dets = decode_detections(raw, letterbox_params(640, 640), labels=[f"c{i}" for i in range(NUM_CLASSES)])
    assert [d.score for d in dets] == pytest.approx([0.8, 0.3])
    assert [d.label for d in dets] == ["c4", "c7"]


@pytest.mark.parametrize("bad", [
    np.zeros((17,), np.float32),
    np.zeros((2, 17, 8400), np.float32),
    np.zeros((4, 8400), np.float32),
])
def test_malformed_shapes_raise(bad):
    with pytest.raises(MalformedTensorError):
        decode(bad, letterbox_params(640, 640))


def test_expected_dimensions_are_enforced():
    params = letterbox_params(640, 640)
    with pytest.raises(MalformedTensorError):
        decode(_raw(num_classes=12), params, num_classes=NUM_CLASSES)
    with pytest.raises(MalformedTensorError):
        decode(_raw(cells=100), params, num_cells=CELLS)


def test_decoder_swallows_malformed_tensor():
    decoder = YoloDecoder()
    assert decoder.detect(np.zeros((3, 3), np.float32), letterbox_params(640, 640)) == []


def test_decoder_uses_configured_thresholds():
    raw = _raw()
    _put(raw, 0, 100.0, 100.0, 20.0, 20.0, cls=0, score=0.05)
    params = letterbox_params(640, 640)
    assert len(YoloDecoder(conf_thresh=0.01).detect(raw, params)) == 1
    assert YoloDecoder(conf_thresh=0.1).detect(raw, params) == []


def test_suppression_uses_returned_integer_boxes():
    # float IoU is just under 0.2, truncated IoU is 0.25
    raw = _raw()
    _put(raw, 0, 5.0, 5.0, 10.0, 10.0, cls=0, score=0.9)
    _put(raw, 1, 11.7, 5.0, 10.0, 10.0, cls=0, score=0.8)
    dets = decode(raw, letterbox_params(640, 640), iou_thresh=0.2)
    assert dets == [BoundingBox(0, 0, 10, 10)]
