import logging
from typing import List, Optional

import cv2
import numpy as np
from PyQt6 import QtCore, QtGui, QtWidgets

from kyc_capture.app.config import AppConfig
from kyc_capture.app.errors import InitializationFailure
from kyc_capture.app.utils import now_ts
from kyc_capture.models.base import DocumentType, Frame, LandmarkProvider, OverlayCommand, UploadService
from kyc_capture.models.uploads import submit_capture
from kyc_capture.pipeline.coordinator import (
    CaptureCoordinator,
    CaptureFailed,
    CaptureReady,
    CaptureRejected,
    DetectionUpdate,
    ModelFailure,
)

logger = logging.getLogger(__name__)


class ScanView(QtWidgets.QWidget):
    captured = QtCore.pyqtSignal(str, int)  # kind, size in bytes

    def __init__(
        self,
        cfg: AppConfig,
        uploads: UploadService,
        landmarks: Optional[LandmarkProvider] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.cfg = cfg
        self.uploads = uploads
        self.landmarks = landmarks
        self.coordinator = CaptureCoordinator(cfg)
        if landmarks is None:
            self.coordinator.mark_model_failed("no landmark provider")

        self.video = None
        self._last_frame: Optional[Frame] = None
        self._stopped = False
        self._status = ""
        self._instruction = ""

        self.label = QtWidgets.QLabel()
        self.label.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.label.setMinimumSize(640, 480)

        self.doc_type = QtWidgets.QComboBox()
        self.doc_type.addItems([d.value for d in DocumentType])
        self.doc_type.setCurrentText(self.coordinator.document_type.value)
        self.doc_type.currentTextChanged.connect(self._on_doc_type)
        self.capture_btn = QtWidgets.QPushButton("Capture face")
        self.capture_btn.clicked.connect(self.capture_face)
        self.retry_btn = QtWidgets.QPushButton("Retry")
        self.retry_btn.clicked.connect(self.retry)

        controls = QtWidgets.QHBoxLayout()
        controls.addWidget(self.doc_type)
        controls.addStretch(1)
        controls.addWidget(self.retry_btn)
        controls.addWidget(self.capture_btn)
        layout = QtWidgets.QVBoxLayout(self)
        layout.addWidget(self.label)
        layout.addLayout(controls)

        self.timer = QtCore.QTimer(self)
        self.timer.timeout.connect(self._on_timer)

    # Lifecycle

    def stop(self) -> None:
        """Stop the tick timer, release the camera and landmark model. Safe to call twice."""
        if self.timer.isActive():
            self.timer.stop()
        self._release_camera()
        if not self._stopped:
            self._stopped = True
            self.coordinator.stop()
            if self.landmarks is not None:
                self.landmarks.close()
                self.landmarks = None

    def closeEvent(self, e: QtGui.QCloseEvent) -> None:
        self.stop()
        return super().closeEvent(e)

    def showEvent(self, e: QtGui.QShowEvent) -> None:
        if self._stopped:
            return super().showEvent(e)
        if self.video is None:
            self.video = open_camera(self.cfg)
        if not self.timer.isActive():
            self.timer.start(self.cfg.camera.tick_ms)
        return super().showEvent(e)

    def hideEvent(self, e: QtGui.QHideEvent) -> None:
        # Release camera while hidden; the session itself survives
        if self.timer.isActive():
            self.timer.stop()
        self._release_camera()
        return super().hideEvent(e)

    def _release_camera(self) -> None:
        if self.video is not None:
            self.video.release()
            self.video = None

    # Actions

    def _on_doc_type(self, text: str) -> None:
        self.coordinator.document_type = DocumentType(text)
        logger.info(f"Document type set to {text}")

    def retry(self) -> None:
        self.coordinator.reset()
        if self.landmarks is None:
            self.coordinator.mark_model_failed("no landmark provider")
        self._status = ""
        self._instruction = ""

    def capture_face(self) -> None:
        if self._last_frame is None:
            return
        self._handle([self.coordinator.request_face_capture(self._last_frame, now_ts())])

    # Tick

    def _on_timer(self):
        ok, img = self.video.read() if self.video is not None else (False, None)
        if not ok:
            return
        frame = Frame.from_array(img, timestamp=now_ts())
        self._last_frame = frame
        faces = self.coordinator.detect_faces(self.landmarks, img)
        overlay = self._handle(self.coordinator.tick(frame, faces))
        disp = img.copy()
        draw_overlay(disp, overlay)
        if not self.coordinator.liveness_failed:
            draw_guide(disp, self.cfg.liveness.guide_radius_ratio)
        self._set_pixmap(disp, self._status, self._instruction)

    def _handle(self, events) -> List[OverlayCommand]:
        overlay: List[OverlayCommand] = []
        for ev in events:
            if isinstance(ev, DetectionUpdate):
                overlay = ev.overlay
                self._status = ev.status
                if ev.instruction:
                    self._instruction = ev.instruction
            elif isinstance(ev, CaptureReady):
                error = submit_capture(self.uploads, ev.buffer)
                if error is not None:
                    self._status = error
                else:
                    self.captured.emit(ev.buffer.kind.value, len(ev.buffer.data))
            elif isinstance(ev, CaptureFailed):
                self._status = ev.error.message
            elif isinstance(ev, CaptureRejected):
                self._instruction = ev.instruction
            elif isinstance(ev, ModelFailure):
                logger.warning(f"Liveness unavailable: {ev.reason}")
                self._instruction = "Face check unavailable. Use manual capture."
        return overlay

    def _set_pixmap(self, frame_bgr: np.ndarray, status: str, instruction: str):
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        h, w, ch = rgb.shape
        qimg = QtGui.QImage(rgb.data, w, h, ch * w, QtGui.QImage.Format.Format_RGB888)
        pix = QtGui.QPixmap.fromImage(qimg)
        painter = QtGui.QPainter(pix)
        painter.setPen(QtGui.QPen(QtGui.QColor(255, 255, 255)))
        painter.setFont(QtGui.QFont("Arial", 18))
        painter.drawText(20, 40, status)
        painter.drawText(20, h - 30, instruction)
        painter.end()
        target = pix.scaled(
            self.label.size(),
            QtCore.Qt.AspectRatioMode.KeepAspectRatio,
            QtCore.Qt.TransformationMode.SmoothTransformation,
        )
        self.label.setPixmap(target)


def draw_overlay(frame_bgr: np.ndarray, commands: List[OverlayCommand]) -> None:
    for cmd in commands:
        pts = np.array(cmd.points, dtype=np.int32).reshape(-1, 1, 2)
        color = cmd.color.bgr()
        cv2.polylines(frame_bgr, [pts], cmd.closed, color, 3, cv2.LINE_AA)
        if cmd.text:
            x, y = pts[0, 0]
            cv2.putText(frame_bgr, cmd.text, (int(x), max(0, int(y) - 10)), cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, 2, cv2.LINE_AA)


def draw_guide(frame_bgr: np.ndarray, radius_ratio: float) -> None:
    h, w = frame_bgr.shape[:2]
    r = int(min(w, h) * radius_ratio)
    cv2.circle(frame_bgr, (w // 2, h // 2), r, (255, 255, 255), 2, cv2.LINE_AA)


def open_camera(cfg: AppConfig):
    # Prefer V4L2, fall back to the default backend
    cap = cv2.VideoCapture(cfg.camera.device_index, cv2.CAP_V4L2)
    _configure(cap, cfg)
    ok, _ = cap.read()
    if ok:
        return cap
    logger.warning("V4L2 camera backend unavailable; using default backend")
    cap.release()
    cap = cv2.VideoCapture(cfg.camera.device_index)
    _configure(cap, cfg)
    return cap


def _configure(cap, cfg: AppConfig) -> None:
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, cfg.camera.width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, cfg.camera.height)
    cap.set(cv2.CAP_PROP_FPS, cfg.camera.fps)


def make_landmarks() -> Optional[LandmarkProvider]:
    from kyc_capture.models.mediapipe_landmarks import MediaPipeFaceMeshProvider

    try:
        return MediaPipeFaceMeshProvider()
    except InitializationFailure as e:
        logger.error(f"{e.message}: {e.details.get('reason')}")
        return None
