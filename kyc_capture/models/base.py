from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple
import numpy as np

Point = Tuple[float, float]


@dataclass
class Frame:
    pixels: np.ndarray
    width: int
    height: int
    timestamp: float
    channel_order: str = "BGR"

    @classmethod
    def from_array(cls, pixels: np.ndarray, timestamp: float = 0.0, channel_order: str = "BGR") -> "Frame":
        h, w = pixels.shape[:2]
        return cls(pixels, int(w), int(h), float(timestamp), channel_order)


@dataclass(frozen=True)
class DocumentCorners:
    top_left: Point
    top_right: Point
    bottom_right: Point
    bottom_left: Point

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]]) -> "DocumentCorners":
        """Label 4 points: sort by y, split top/bottom pairs, sort each pair by x."""
        pts = [(float(p[0]), float(p[1])) for p in points]
        if len(pts) != 4:
            raise ValueError(f"Expected 4 corner points, got {len(pts)}")
        pts.sort(key=lambda p: (p[1], p[0]))
        top = sorted(pts[:2])
        bottom = sorted(pts[2:])
        return cls(top[0], top[1], bottom[1], bottom[0])

    def as_array(self) -> np.ndarray:
        return np.array([self.top_left, self.top_right, self.bottom_right, self.bottom_left], dtype=np.float32)

    def side_lengths(self) -> Tuple[float, float, float, float]:
        """(top, right, bottom, left) edge lengths."""
        c = self.as_array().astype(np.float64)
        d = np.roll(c, -1, axis=0) - c
        top, right, bottom, left = np.sqrt((d ** 2).sum(axis=1))
        return float(top), float(right), float(bottom), float(left)

    def scaled(self, f: float) -> "DocumentCorners":
        return DocumentCorners(*[(x * f, y * f) for x, y in self.as_array().tolist()])

    def to_list(self) -> List[List[float]]:
        return [list(p) for p in (self.top_left, self.top_right, self.bottom_right, self.bottom_left)]


@dataclass
class DetectionResult:
    detected: bool
    corners: Optional[DocumentCorners] = None
    quality: float = 0.0
    stable: bool = False
    score: float = 0.0
    rectangularity: float = 0.0


class DocumentType(str, Enum):
    CNIC = "CNIC"
    PASSPORT = "Passport"
    DRIVING_LICENSE = "DrivingLicense"


class CaptureKind(str, Enum):
    DOCUMENT = "document"
    FACE = "face"


@dataclass
class CaptureBuffer:
    data: bytes
    kind: CaptureKind
    document_type: Optional[DocumentType] = None
    width: int = 0
    height: int = 0
    timestamp: float = 0.0


@dataclass
class FaceLandmarks:
    # Normalized [0, 1] image coordinates
    left_eye_outer: Point
    right_eye_outer: Point
    nose: Point
    points: Tuple[Point, ...] = ()

    def all_points(self) -> Tuple[Point, ...]:
        return self.points or (self.left_eye_outer, self.right_eye_outer, self.nose)


class LivenessStage(str, Enum):
    CENTER = "CENTER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    DONE = "DONE"


@dataclass
class LivenessState:
    stage: LivenessStage = LivenessStage.CENTER
    center_hold: int = 0
    left_hold: int = 0
    right_hold: int = 0
    yaw: Optional[float] = None
    abs_yaw: Optional[float] = None
    completed: bool = False
    capture_triggered: bool = False
    last_face_at: Optional[float] = None
    instruction: str = "Look straight at the camera"

    def reset(self) -> None:
        self.__init__()


class OverlayColor(str, Enum):
    RED = "#ef4444"
    AMBER = "#f59e0b"
    GREEN = "#22c55e"

    def bgr(self) -> Tuple[int, int, int]:
        h = self.value.lstrip("#")
        r, g, b = (int(h[i:i + 2], 16) for i in (0, 2, 4))
        return b, g, r


@dataclass
class OverlayCommand:
    points: List[Point]
    color: OverlayColor
    text: str = ""
    closed: bool = True


class LandmarkProvider:
    def detect(self, frame_bgr: np.ndarray) -> List[FaceLandmarks]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class UploadService:
    def submit(self, buffer: CaptureBuffer) -> None:
        raise NotImplementedError
