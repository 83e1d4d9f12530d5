import math
from typing import Optional

import numpy as np

from kyc_capture.app.config import QualityConfig
from kyc_capture.app.utils import corner_angles, polygon_area
from kyc_capture.models.base import DocumentCorners


class QualityScorer:
    """
    Scores how plausible a quad is as a document held in frame.

    Starts from a "document detected" floor and adds bonuses or penalties for
    edge margin, aspect ratio, area fraction and corner angles. Pure: the
    same corners and frame size always give the same score in [0, 1].
    """

    MARGIN_BONUS, MARGIN_PENALTY = 0.15, 0.2
    ASPECT_BONUS, ASPECT_PENALTY = 0.1, 0.15
    AREA_BONUS, AREA_PENALTY = 0.1, 0.15
    ANGLE_BONUS, ANGLE_PENALTY = 0.15, 0.1

    def __init__(self, cfg: Optional[QualityConfig] = None):
        self.cfg = cfg or QualityConfig()

    def quality(self, corners: Optional[DocumentCorners], frame_w: int, frame_h: int) -> float:
        if corners is None or frame_w <= 0 or frame_h <= 0:
            return 0.0
        c = self.cfg
        pts = corners.as_array().astype(np.float64)
        if not np.all(np.isfinite(pts)):
            return 0.0
        area = polygon_area(pts)
        top, right, bottom, left = corners.side_lengths()
        if area < 1.0 or min(top, right, bottom, left) <= 1e-6:
            return 0.0

        score = c.floor

        in_margin = bool(
            np.all(pts[:, 0] >= c.edge_margin)
            and np.all(pts[:, 0] <= frame_w - c.edge_margin)
            and np.all(pts[:, 1] >= c.edge_margin)
            and np.all(pts[:, 1] <= frame_h - c.edge_margin)
        )
        score += self.MARGIN_BONUS if in_margin else -self.MARGIN_PENALTY

        aspect = ((top + bottom) / 2.0) / ((left + right) / 2.0)
        score += self.ASPECT_BONUS if c.min_aspect <= aspect <= c.max_aspect else -self.ASPECT_PENALTY

        area_ratio = area / float(frame_w * frame_h)
        score += self.AREA_BONUS if c.min_area_ratio <= area_ratio <= c.max_area_ratio else -self.AREA_PENALTY

        worst = float(np.max(np.abs(corner_angles(pts) - 90.0)))
        score += self.ANGLE_BONUS if worst <= c.angle_tolerance_deg else -self.ANGLE_PENALTY

        if math.isnan(score):
            return 0.0
        return float(min(1.0, max(0.0, score)))
