import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from kyc_capture.app.config import RectifyConfig
from kyc_capture.app.errors import CaptureFailure
from kyc_capture.app.utils import encode_jpeg
from kyc_capture.models.base import CaptureBuffer, CaptureKind, DocumentCorners, DocumentType, Frame

logger = logging.getLogger(__name__)


def target_size(corners: DocumentCorners) -> Tuple[int, int]:
    """Output (width, height): the longer of each pair of opposing sides."""
    top, right, bottom, left = corners.side_lengths()
    return max(1, int(round(max(top, bottom)))), max(1, int(round(max(left, right))))


class PerspectiveRectifier:
    def __init__(self, cfg: Optional[RectifyConfig] = None):
        self.cfg = cfg or RectifyConfig()

    def rectify(self, frame: Union[Frame, np.ndarray], corners: DocumentCorners) -> np.ndarray:
        image = frame.pixels if isinstance(frame, Frame) else frame
        width, height = target_size(corners)
        if self.cfg.mode == "crop":
            out = self._crop(image, corners, width, height)
        else:
            try:
                out = self._warp(image, corners, width, height)
            except cv2.error as e:
                logger.warning(f"Perspective warp failed ({e}); falling back to bounding-box crop")
                out = self._crop(image, corners, width, height)
        if out is None or out.size == 0:
            raise CaptureFailure(CaptureKind.DOCUMENT.value, "empty rectified image")
        return out

    def _warp(self, image: np.ndarray, corners: DocumentCorners, width: int, height: int) -> np.ndarray:
        src = corners.as_array()
        dst = np.array([
            [0, 0],
            [width - 1, 0],
            [width - 1, height - 1],
            [0, height - 1]
        ], dtype="float32")
        M = cv2.getPerspectiveTransform(src, dst)
        return cv2.warpPerspective(image, M, (width, height))

    def _crop(self, image: np.ndarray, corners: DocumentCorners, width: int, height: int) -> Optional[np.ndarray]:
        # Degraded: keeps skew, only crops and scales the bounding box
        pts = corners.as_array()
        h, w = image.shape[:2]
        x0 = int(max(0, np.floor(pts[:, 0].min())))
        y0 = int(max(0, np.floor(pts[:, 1].min())))
        x1 = int(min(w, np.ceil(pts[:, 0].max())))
        y1 = int(min(h, np.ceil(pts[:, 1].max())))
        crop = image[y0:y1, x0:x1]
        if crop.size == 0:
            return None
        return cv2.resize(crop, (width, height), interpolation=cv2.INTER_LINEAR)

    def capture(
        self,
        frame: Frame,
        corners: DocumentCorners,
        document_type: Optional[DocumentType] = None,
    ) -> CaptureBuffer:
        image = self.rectify(frame, corners)
        try:
            data = encode_jpeg(image, self.cfg.jpeg_quality)
        except (ValueError, cv2.error) as e:
            raise CaptureFailure(CaptureKind.DOCUMENT.value, str(e)) from e
        h, w = image.shape[:2]
        logger.info(f"Document rectified to {w}x{h} ({len(data)} bytes)")
        return CaptureBuffer(data, CaptureKind.DOCUMENT, document_type, w, h, frame.timestamp)
