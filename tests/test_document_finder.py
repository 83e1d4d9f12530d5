import numpy as np
import cv2
import pytest

from kyc_capture.app.config import AppConfig, apply_profile
from kyc_capture.models.base import DocumentCorners, Frame
from kyc_capture.pipeline.document_finder import DocumentQuadFinder, convex_hull, extract_contours, rectangularity


def doc_frame(quad, size=(400, 400)):
    w, h = size
    img = np.zeros((h, w, 3), dtype=np.uint8)
    cv2.fillPoly(img, [np.array(quad, dtype=np.int32)], (255, 255, 255))
    return Frame.from_array(img, timestamp=0.0)


SQUARE = [(100, 100), (300, 100), (300, 300), (100, 300)]


def _close(corners: DocumentCorners, quad, tol):
    expected = DocumentCorners.from_points(quad).as_array()
    return np.abs(corners.as_array() - expected).max() <= tol


def test_finds_white_square_on_black():
    cand = DocumentQuadFinder().find(doc_frame(SQUARE))
    assert cand is not None
    assert _close(cand.corners, SQUARE, 8)
    assert cand.rectangularity >= 0.9
    assert 0.2 <= cand.area_ratio <= 0.35


def test_finds_rotated_quad():
    quad = [(120, 90), (320, 120), (300, 310), (100, 280)]
    cand = DocumentQuadFinder().find(doc_frame(quad))
    assert cand is not None
    assert _close(cand.corners, quad, 10)


def test_full_resolution_and_strict_profile():
    cfg = apply_profile(AppConfig(), "strict")
    cand = DocumentQuadFinder(cfg.document).find(doc_frame(SQUARE), scale=1.0)
    assert cand is not None
    assert _close(cand.corners, SQUARE, 6)


def test_rgb_channel_order():
    frame = doc_frame(SQUARE)
    frame.channel_order = "RGB"
    assert DocumentQuadFinder().find(frame) is not None


def test_empty_frame_has_no_document():
    frame = Frame.from_array(np.zeros((240, 320, 3), dtype=np.uint8))
    assert DocumentQuadFinder().find(frame) is None


def test_small_blob_rejected_by_area():
    frame = doc_frame([(190, 190), (210, 190), (210, 210), (190, 210)])
    assert DocumentQuadFinder().find(frame) is None


def test_invalid_scale():
    with pytest.raises(ValueError):
        DocumentQuadFinder().find(doc_frame(SQUARE), scale=0.0)


def test_deterministic():
    frame = doc_frame(SQUARE)
    a = DocumentQuadFinder().find(frame)
    b = DocumentQuadFinder().find(frame)
    assert a.corners == b.corners
    assert a.score == b.score


def test_rectangularity_of_square_and_skewed_quad():
    square = DocumentCorners.from_points(SQUARE)
    assert rectangularity(square) >= 0.9
    skewed = DocumentCorners.from_points([(100, 100), (300, 100), (380, 300), (20, 300)])
    assert rectangularity(skewed) < rectangularity(square)


def test_convex_hull_drops_interior_points():
    pts = np.array([[0, 0], [10, 0], [10, 10], [0, 10], [5, 5], [3, 7]], dtype=np.float64)
    hull = convex_hull(pts)
    assert len(hull) == 4
    assert {tuple(p) for p in hull.tolist()} == {(0, 0), (10, 0), (10, 10), (0, 10)}


def test_hull_starts_at_leftmost_vertex():
    pts = np.array([[10, 10], [0, 5], [10, 0], [5, 5], [0, 0]], dtype=np.float64)
    hull = convex_hull(pts)
    assert hull[0].tolist() == [0, 0]
    assert len(hull) == 4


def test_flood_fill_stops_after_total_budget():
    edges = np.zeros((100, 100), dtype=bool)
    edges[:, ::4] = True  # 25 separate vertical lines of 100 pixels
    assert len(extract_contours(edges, stride=1, min_pixels=10)) == 25
    limited = extract_contours(edges, stride=1, min_pixels=10, max_total=250)
    assert len(limited) == 3


def test_dense_edges_respect_pixel_budget():
    edges = np.ones((200, 200), dtype=bool)
    comps = extract_contours(edges, stride=1, min_pixels=10, max_pixels=20000, max_total=500)
    assert sum(len(c) for c in comps) <= 500
