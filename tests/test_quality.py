import numpy as np

from kyc_capture.models.base import DocumentCorners
from kyc_capture.pipeline.quality import QualityScorer


SQUARE = DocumentCorners.from_points([(100, 100), (300, 100), (300, 300), (100, 300)])


def test_centered_square_scores_high():
    assert QualityScorer().quality(SQUARE, 400, 400) >= 0.9


def test_corner_near_edge_lowers_quality():
    scorer = QualityScorer()
    near = DocumentCorners.from_points([(2, 100), (300, 100), (300, 300), (100, 300)])
    assert scorer.quality(near, 400, 400) < scorer.quality(SQUARE, 400, 400)


def test_range_and_determinism():
    scorer = QualityScorer()
    rng = np.random.default_rng(7)
    for _ in range(50):
        pts = rng.uniform(-50, 450, size=(4, 2)).tolist()
        c = DocumentCorners.from_points(pts)
        q = scorer.quality(c, 400, 400)
        assert 0.0 <= q <= 1.0
        assert q == scorer.quality(c, 400, 400)


def test_degenerate_inputs_score_zero():
    scorer = QualityScorer()
    assert scorer.quality(None, 400, 400) == 0.0
    flat = DocumentCorners.from_points([(0, 0), (100, 0), (200, 0), (300, 0)])
    assert scorer.quality(flat, 400, 400) == 0.0
    assert scorer.quality(SQUARE, 0, 400) == 0.0
