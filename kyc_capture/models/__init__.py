from .base import (
    CaptureBuffer,
    CaptureKind,
    DetectionResult,
    DocumentCorners,
    DocumentType,
    FaceLandmarks,
    Frame,
    LandmarkProvider,
    LivenessStage,
    LivenessState,
    OverlayColor,
    OverlayCommand,
    UploadService,
)
from .uploads import DirectoryUploadService
from .mediapipe_landmarks import MediaPipeFaceMeshProvider

__all__ = [
    "CaptureBuffer",
    "CaptureKind",
    "DetectionResult",
    "DocumentCorners",
    "DocumentType",
    "FaceLandmarks",
    "Frame",
    "LandmarkProvider",
    "LivenessStage",
    "LivenessState",
    "OverlayColor",
    "OverlayCommand",
    "UploadService",
    "DirectoryUploadService",
    "MediaPipeFaceMeshProvider",
]
