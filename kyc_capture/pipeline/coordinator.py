"""
Per-tick orchestration of the document and liveness pipelines.

The host calls ``tick`` once per display frame and receives a list of
events instead of callbacks:

- DetectionUpdate: overlay commands plus document/liveness status
- CaptureReady: an encoded capture buffer for the upload service
- CaptureFailed: rectification/encoding failed; the lock was released
- CaptureRejected: a manual capture request was refused
- ModelFailure: the landmark model failed or timed out (reported once)
- NoOp: nothing to do (stopped, stale frame)
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import cv2

from kyc_capture.app.config import AppConfig
from kyc_capture.app.errors import CaptureFailure
from kyc_capture.app.utils import encode_jpeg
from kyc_capture.models.base import (
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
)
from kyc_capture.pipeline.document_finder import DocumentQuadFinder
from kyc_capture.pipeline.liveness import LivenessStateMachine
from kyc_capture.pipeline.pose import PoseEstimator
from kyc_capture.pipeline.quality import QualityScorer
from kyc_capture.pipeline.rectify import PerspectiveRectifier
from kyc_capture.pipeline.stability import TemporalStabilityTracker

logger = logging.getLogger(__name__)


@dataclass
class DetectionUpdate:
    document: Optional[DetectionResult]
    overlay: List[OverlayCommand] = field(default_factory=list)
    status: str = ""
    detection_ran: bool = False
    liveness_stage: Optional[LivenessStage] = None
    instruction: str = ""
    yaw: Optional[float] = None
    kind: str = "detection_update"


@dataclass
class CaptureReady:
    buffer: CaptureBuffer
    kind: str = "capture_ready"


@dataclass
class CaptureFailed:
    capture_kind: CaptureKind
    error: CaptureFailure
    kind: str = "capture_failed"


@dataclass
class CaptureRejected:
    capture_kind: CaptureKind
    instruction: str
    kind: str = "capture_rejected"


@dataclass
class ModelFailure:
    reason: str
    kind: str = "model_failure"


@dataclass
class NoOp:
    reason: str = ""
    kind: str = "noop"


CoordinatorEvent = Union[DetectionUpdate, CaptureReady, CaptureFailed, CaptureRejected, ModelFailure, NoOp]


def overlay_color(quality: float, stable: bool) -> OverlayColor:
    if quality < 0.4:
        return OverlayColor.RED
    if quality >= 0.7 and stable:
        return OverlayColor.GREEN
    return OverlayColor.AMBER


def document_status(result: Optional[DetectionResult]) -> str:
    if result is None or not result.detected:
        return "Place the document inside the frame"
    if result.stable:
        return "Hold still, capturing..."
    if result.quality < 0.4:
        return "Align the document edges with the frame"
    return "Hold the document steady"


class CaptureCoordinator:
    def __init__(
        self,
        cfg: Optional[AppConfig] = None,
        document_type: Optional[DocumentType] = None,
        liveness_enabled: bool = True,
    ):
        self.cfg = cfg or AppConfig()
        self.liveness_enabled = liveness_enabled
        self.finder = DocumentQuadFinder(self.cfg.document)
        self.scorer = QualityScorer(self.cfg.quality)
        self.tracker = TemporalStabilityTracker(self.cfg.stability)
        self.rectifier = PerspectiveRectifier(self.cfg.rectify)
        self.pose = PoseEstimator(self.cfg.liveness)
        self.liveness = LivenessStateMachine(self.cfg.liveness)
        self.document_type = document_type or DocumentType(self.cfg.capture.document_type)
        self.state = self.liveness.new_state()
        self._stopped = False
        self.reset()

    # Session control

    def reset(self, now: Optional[float] = None) -> None:
        """Explicit retry: clears document tracking, capture locks and liveness."""
        self.tracker.reset()
        self.state.reset()
        self._tick_index = 0
        self._last_timestamp: Optional[float] = None
        self._last_result: Optional[DetectionResult] = None
        self._doc_locked_until: Optional[float] = None
        self._started_at: Optional[float] = now
        self._model_ready = False
        self._model_failed = False
        self._failure_reported = False
        self._failure_reason = ""

    def stop(self) -> None:
        if not self._stopped:
            logger.info("Capture coordinator stopped")
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def liveness_failed(self) -> bool:
        return self._model_failed

    def mark_model_loaded(self) -> None:
        self._model_ready = True

    def mark_model_failed(self, reason: str) -> None:
        if not self._model_failed:
            logger.error(f"Landmark model failed: {reason}")
        self._model_failed = True
        self._failure_reason = reason

    def detect_faces(self, provider: Optional[LandmarkProvider], image) -> Optional[List[FaceLandmarks]]:
        """Run the landmark provider for one frame. A provider error marks the model failed."""
        if provider is None or self._model_failed:
            return None
        try:
            return provider.detect(image)
        except Exception as e:
            self.mark_model_failed(f"landmark detection failed: {e}")
            return None

    # Per tick

    def tick(
        self,
        frame: Frame,
        faces: Optional[Sequence[FaceLandmarks]] = None,
        now: Optional[float] = None,
    ) -> List[CoordinatorEvent]:
        if self._stopped:
            return [NoOp("stopped")]
        now = frame.timestamp if now is None else now
        if self._last_timestamp is not None and frame.timestamp < self._last_timestamp:
            logger.debug(f"Dropping stale frame ts={frame.timestamp} < {self._last_timestamp}")
            return [NoOp("stale frame")]
        self._last_timestamp = frame.timestamp

        events: List[CoordinatorEvent] = []
        if self.liveness_enabled:
            failure = self._check_model(faces, now)
            if failure is not None:
                events.append(failure)

        update, capture = self._document_step(frame, now)
        face_event = None
        if self.liveness_enabled:
            face_event = self._liveness_step(frame, faces, now, update)
        events.append(update)
        if capture is not None:
            events.append(capture)
        if face_event is not None:
            events.append(face_event)
        return events

    def _check_model(self, faces, now: float) -> Optional[ModelFailure]:
        if self._started_at is None:
            self._started_at = now
        if faces is not None:
            self._model_ready = True
        if not self._model_ready and not self._model_failed:
            if now - self._started_at > self.cfg.liveness.init_timeout:
                self.mark_model_failed(f"no landmark result within {self.cfg.liveness.init_timeout:.0f}s")
        if self._model_failed and not self._failure_reported:
            self._failure_reported = True
            return ModelFailure(self._failure_reason)
        return None

    def _document_step(self, frame: Frame, now: float):
        run = self._tick_index % (max(0, self.cfg.capture.frame_skip) + 1) == 0
        self._tick_index += 1
        if self._doc_locked_until is not None and now >= self._doc_locked_until:
            logger.debug("Document capture cooldown elapsed")
            self._doc_locked_until = None

        capture: Optional[CoordinatorEvent] = None
        if run:
            result = self.detect(frame)
            self._last_result = result
            if (
                result.stable
                and result.corners is not None
                and result.quality > self.cfg.capture.capture_threshold
                and self._doc_locked_until is None
            ):
                capture = self._capture_document(frame, result.corners, now)
        result = self._last_result
        update = DetectionUpdate(
            document=result,
            overlay=self._overlay(result),
            status=document_status(result),
            detection_ran=run,
        )
        return update, capture

    def detect(self, frame: Frame) -> DetectionResult:
        cand = self.finder.find(frame)
        if cand is None:
            self.tracker.update(None, 0.0)
            return DetectionResult(detected=False)
        quality = self.scorer.quality(cand.corners, frame.width, frame.height)
        stable = self.tracker.update(cand.corners, quality)
        return DetectionResult(
            detected=True,
            corners=cand.corners,
            quality=quality,
            stable=stable,
            score=cand.score,
            rectangularity=cand.rectangularity,
        )

    def _overlay(self, result: Optional[DetectionResult]) -> List[OverlayCommand]:
        corners: Optional[DocumentCorners] = self.tracker.smoothed
        if result is None or not result.detected or corners is None:
            return []
        color = overlay_color(result.quality, result.stable)
        return [OverlayCommand(list(map(tuple, corners.as_array().tolist())), color, f"{result.quality:.0%}")]

    def _capture_document(self, frame: Frame, corners: DocumentCorners, now: float) -> CoordinatorEvent:
        self._doc_locked_until = now + self.cfg.capture.cooldown
        try:
            buffer = self.rectifier.capture(frame, corners, self.document_type)
        except CaptureFailure as e:
            logger.error(f"Document capture failed: {e.details.get('reason')}")
            self._doc_locked_until = None
            self.tracker.reset()
            return CaptureFailed(CaptureKind.DOCUMENT, e)
        self.tracker.reset()
        logger.info(f"Document captured ({self.document_type.value}); locked for {self.cfg.capture.cooldown}s")
        return CaptureReady(buffer)

    def _liveness_step(self, frame: Frame, faces, now: float, update: DetectionUpdate) -> Optional[CoordinatorEvent]:
        state: LivenessState = self.state
        event: Optional[CoordinatorEvent] = None
        if self._model_failed:
            update.instruction = "Face check unavailable. Use manual capture."
        else:
            pose = self.pose.estimate(faces, frame.width, frame.height)
            if pose is None:
                step = self.liveness.no_face(state, now)
            else:
                step = self.liveness.step(state, pose, now)
                if step.capture_trigger:
                    event = self._capture_face(frame, now)
            update.instruction = state.instruction
        update.liveness_stage = state.stage
        update.yaw = state.yaw
        return event

    def _capture_face(self, frame: Frame, now: Optional[float] = None) -> CoordinatorEvent:
        try:
            data = encode_jpeg(frame.pixels, self.cfg.rectify.jpeg_quality)
        except (ValueError, cv2.error) as e:
            err = CaptureFailure(CaptureKind.FACE.value, str(e))
            logger.error(f"Face capture failed: {e}")
            self.liveness.release_capture(self.state)
            return CaptureFailed(CaptureKind.FACE, err)
        logger.info(f"Face captured ({len(data)} bytes)")
        return CaptureReady(CaptureBuffer(data, CaptureKind.FACE, None, frame.width, frame.height, frame.timestamp if now is None else now))

    def request_face_capture(self, frame: Frame, now: Optional[float] = None) -> CoordinatorEvent:
        """Manual capture: re-validates yaw unless the liveness model has failed."""
        if self._stopped:
            return NoOp("stopped")
        if not self._model_failed:
            ok, instruction = self.liveness.validate_manual_capture(self.state)
            if not ok:
                self.state.instruction = instruction
                return CaptureRejected(CaptureKind.FACE, instruction)
        else:
            logger.info("Manual face capture without liveness (model unavailable)")
        return self._capture_face(frame, now)
