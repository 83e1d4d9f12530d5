from typing import List

import numpy as np

try:
    import cv2  # type: ignore
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

try:
    import mediapipe as mp  # type: ignore
except Exception:  # optional dependency may be missing
    mp = None  # type: ignore

from kyc_capture.app.errors import InitializationFailure
from .base import FaceLandmarks, LandmarkProvider

# FaceMesh topology: outer eye corners and the two nose-tip vertices
LEFT_EYE_OUTER = 33
RIGHT_EYE_OUTER = 263
NOSE_TIP = (1, 4)


class MediaPipeFaceMeshProvider(LandmarkProvider):
    def __init__(self, max_faces: int = 2, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5):
        if mp is None or cv2 is None:
            raise InitializationFailure("mediapipe is required for MediaPipeFaceMeshProvider")
        try:
            self.mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=False,
                max_num_faces=max_faces,
                refine_landmarks=True,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
        except Exception as e:
            raise InitializationFailure(f"FaceMesh failed to load: {e}") from e

    def detect(self, frame_bgr: np.ndarray) -> List[FaceLandmarks]:
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        res = self.mesh.process(rgb)
        if not res.multi_face_landmarks:
            return []
        return [landmarks_from_mesh(face.landmark) for face in res.multi_face_landmarks]

    def close(self) -> None:
        self.mesh.close()


def landmarks_from_mesh(lm) -> FaceLandmarks:
    """Map a FaceMesh landmark list (objects with .x/.y) to FaceLandmarks."""
    nose_x = sum(lm[i].x for i in NOSE_TIP) / len(NOSE_TIP)
    nose_y = sum(lm[i].y for i in NOSE_TIP) / len(NOSE_TIP)
    return FaceLandmarks(
        left_eye_outer=(float(lm[LEFT_EYE_OUTER].x), float(lm[LEFT_EYE_OUTER].y)),
        right_eye_outer=(float(lm[RIGHT_EYE_OUTER].x), float(lm[RIGHT_EYE_OUTER].y)),
        nose=(float(nose_x), float(nose_y)),
        points=tuple((float(p.x), float(p.y)) for p in lm),
    )
