import math

import cv2
import numpy as np
import pytest

from kyc_capture.app.config import RectifyConfig
from kyc_capture.app.errors import CaptureFailure
from kyc_capture.models.base import CaptureKind, DocumentCorners, DocumentType, Frame
from kyc_capture.pipeline.rectify import PerspectiveRectifier, target_size


def _rotated_square(cx, cy, side, deg):
    a = math.radians(deg)
    half = side / 2.0
    pts = []
    for dx, dy in ((-half, -half), (half, -half), (half, half), (-half, half)):
        pts.append((cx + dx * math.cos(a) - dy * math.sin(a), cy + dx * math.sin(a) + dy * math.cos(a)))
    return pts


def test_rotated_square_rectifies_to_side_length():
    img = np.zeros((400, 400, 3), dtype=np.uint8)
    pts = _rotated_square(200, 200, 150, 20)
    cv2.fillPoly(img, [np.array(pts, dtype=np.int32)], (255, 255, 255))
    corners = DocumentCorners.from_points(pts)
    out = PerspectiveRectifier().rectify(Frame.from_array(img), corners)
    h, w = out.shape[:2]
    assert abs(w - 150) <= 1 and abs(h - 150) <= 1
    # The document fills the output
    assert out[h // 2, w // 2].tolist() == [255, 255, 255]
    assert out[5:-5, 5:-5].mean() > 240


def test_target_size_uses_longer_sides():
    c = DocumentCorners.from_points([(0, 0), (200, 0), (180, 100), (20, 120)])
    w, h = target_size(c)
    assert w == 200
    assert h == round(math.hypot(20, 120))


def test_crop_mode_keeps_target_size():
    img = np.full((300, 300, 3), 128, dtype=np.uint8)
    c = DocumentCorners.from_points([(50, 60), (250, 50), (240, 200), (60, 210)])
    out = PerspectiveRectifier(RectifyConfig(mode="crop")).rectify(img, c)
    assert (out.shape[1], out.shape[0]) == target_size(c)


def test_crop_outside_frame_fails():
    img = np.zeros((100, 100, 3), dtype=np.uint8)
    c = DocumentCorners.from_points([(200, 200), (300, 200), (300, 300), (200, 300)])
    with pytest.raises(CaptureFailure) as exc:
        PerspectiveRectifier(RectifyConfig(mode="crop")).rectify(img, c)
    assert exc.value.error_code == "CAPTURE_FAILED"


def test_capture_produces_jpeg_buffer():
    img = np.full((200, 300, 3), 200, dtype=np.uint8)
    c = DocumentCorners.from_points([(20, 20), (280, 20), (280, 180), (20, 180)])
    buf = PerspectiveRectifier().capture(Frame.from_array(img, timestamp=4.0), c, DocumentType.PASSPORT)
    assert buf.data[:2] == b"\xff\xd8"
    assert buf.kind == CaptureKind.DOCUMENT
    assert buf.document_type == DocumentType.PASSPORT
    assert (buf.width, buf.height) == (260, 160)
    assert buf.timestamp == 4.0
