from types import SimpleNamespace

import pytest

from kyc_capture.models.mediapipe_landmarks import LEFT_EYE_OUTER, RIGHT_EYE_OUTER, landmarks_from_mesh


def test_landmarks_from_mesh_maps_indices():
    lm = [SimpleNamespace(x=0.5, y=0.5) for _ in range(468)]
    lm[LEFT_EYE_OUTER] = SimpleNamespace(x=0.4, y=0.45)
    lm[RIGHT_EYE_OUTER] = SimpleNamespace(x=0.6, y=0.46)
    lm[1] = SimpleNamespace(x=0.52, y=0.55)
    lm[4] = SimpleNamespace(x=0.54, y=0.53)
    face = landmarks_from_mesh(lm)
    assert face.left_eye_outer == (0.4, 0.45)
    assert face.right_eye_outer == (0.6, 0.46)
    assert face.nose == pytest.approx((0.53, 0.54))
    assert len(face.all_points()) == 468
