import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from kyc_capture.app.config import LivenessConfig
from kyc_capture.models.base import FaceLandmarks

logger = logging.getLogger(__name__)


@dataclass
class PoseEstimate:
    yaw: float
    abs_yaw: float
    face_width: float  # normalized inter-eye distance
    inside_guide: bool
    bbox: Tuple[float, float, float, float]  # x0, y0, x1, y1 in pixels


class PoseEstimator:
    """Horizontal head-turn estimate from 2D landmarks.

    yaw = (nose_x - eye_midpoint_x) / inter_eye_distance. Not a calibrated
    angle: roughly 0 facing the camera, negative when the user turns to their
    left, positive to their right. With `mirror` off the sign follows raw
    camera x instead, which is reversed for a user facing the camera.
    """

    def __init__(self, cfg: Optional[LivenessConfig] = None):
        self.cfg = cfg or LivenessConfig()

    def primary_face(self, faces: Optional[Sequence[FaceLandmarks]]) -> Optional[FaceLandmarks]:
        if not faces:
            return None
        if len(faces) > 1 and self.cfg.multi_face_policy != "primary":
            logger.debug(f"{len(faces)} faces visible; ignoring ambiguous frame")
            return None
        return faces[0]

    def estimate(
        self, faces: Optional[Sequence[FaceLandmarks]], frame_w: int, frame_h: int
    ) -> Optional[PoseEstimate]:
        face = self.primary_face(faces)
        if face is None:
            return None

        def fx(x: float) -> float:
            return 1.0 - x if self.cfg.mirror else x

        ex_a, ex_b = fx(face.left_eye_outer[0]), fx(face.right_eye_outer[0])
        left_x, right_x = min(ex_a, ex_b), max(ex_a, ex_b)
        face_width = right_x - left_x
        mid_x = (left_x + right_x) / 2.0
        yaw = (fx(face.nose[0]) - mid_x) / max(1e-6, face_width)

        xs = [p[0] * frame_w for p in face.all_points()]
        ys = [p[1] * frame_h for p in face.all_points()]
        bbox = (min(xs), min(ys), max(xs), max(ys))
        return PoseEstimate(
            yaw=float(yaw),
            abs_yaw=float(abs(yaw)),
            face_width=float(face_width),
            inside_guide=self.inside_guide(bbox, frame_w, frame_h),
            bbox=bbox,
        )

    def inside_guide(self, bbox: Tuple[float, float, float, float], frame_w: int, frame_h: int) -> bool:
        x0, y0, x1, y1 = bbox
        r = min(frame_w, frame_h) * self.cfg.guide_radius_ratio
        dx = (x0 + x1) / 2.0 - frame_w / 2.0
        dy = (y0 + y1) / 2.0 - frame_h / 2.0
        fits = (x1 - x0) <= r * 2 * 1.05 and (y1 - y0) <= r * 2 * 1.05
        return (dx * dx + dy * dy) <= r * r and fits
