import logging
from collections import deque
from typing import Deque, Optional

import numpy as np

from kyc_capture.app.config import StabilityConfig
from kyc_capture.models.base import DocumentCorners

logger = logging.getLogger(__name__)


class TemporalStabilityTracker:
    """Debounces document detections across frames.

    Counts consecutive acceptable frames; the required count drops for very
    high quality detections. The EMA-smoothed corners feed the overlay only
    and never the stability decision.
    """

    def __init__(self, cfg: Optional[StabilityConfig] = None):
        self.cfg = cfg or StabilityConfig()
        self.reset()

    def reset(self) -> None:
        self.reference: Optional[DocumentCorners] = None
        self.history: Deque[DocumentCorners] = deque(maxlen=max(1, self.cfg.history_size))
        self.good_frames = 0
        self.smoothed: Optional[DocumentCorners] = None
        self.stable = False

    def required_frames(self, quality: float) -> int:
        return self.cfg.fast_frames if quality >= self.cfg.high_quality else self.cfg.slow_frames

    def _drift(self, corners: DocumentCorners) -> float:
        if self.reference is None:
            return 0.0
        d = corners.as_array() - self.reference.as_array()
        return float(np.sqrt((d ** 2).sum(axis=1)).mean())

    def update(self, corners: Optional[DocumentCorners], quality: float) -> bool:
        cfg = self.cfg
        good = corners is not None and quality > cfg.accept_threshold
        if good and cfg.max_corner_shift > 0 and self._drift(corners) > cfg.max_corner_shift:
            good = False
            # Document moved: measure the next frames against the new position
            self.reference = corners

        if good:
            self.good_frames += 1
            if self.reference is None or self.good_frames % max(1, cfg.reference_refresh) == 0:
                self.reference = corners
        else:
            self.good_frames = max(0, self.good_frames - cfg.decay_step)

        if corners is not None:
            self.history.append(corners)
            self._smooth(corners)

        was_stable = self.stable
        self.stable = good and self.good_frames >= self.required_frames(quality)
        if self.stable and not was_stable:
            logger.debug(f"Document stable after {self.good_frames} frames (quality={quality:.2f})")
        return self.stable

    def _smooth(self, corners: DocumentCorners) -> None:
        if self.smoothed is None:
            self.smoothed = corners
            return
        a = self.cfg.smoothing_alpha
        blend = a * corners.as_array() + (1.0 - a) * self.smoothed.as_array()
        self.smoothed = DocumentCorners.from_points(blend.tolist())
