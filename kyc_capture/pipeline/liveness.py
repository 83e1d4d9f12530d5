"""
Head-turn liveness challenge: CENTER -> LEFT -> RIGHT -> DONE.

The machine keeps no state of its own. Every call takes the session's
LivenessState and mutates it in place, so the coordinator owns the state and
can reset it on retry.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from kyc_capture.app.config import LivenessConfig
from kyc_capture.models.base import LivenessStage, LivenessState
from kyc_capture.pipeline.pose import PoseEstimate

logger = logging.getLogger(__name__)

NO_FACE_TEXT = "No face detected. Center your face in frame with good lighting."


@dataclass
class LivenessStep:
    stage: LivenessStage
    instruction: str
    capture_trigger: bool = False
    advanced: bool = False


class LivenessStateMachine:
    def __init__(self, cfg: Optional[LivenessConfig] = None):
        self.cfg = cfg or LivenessConfig()

    def new_state(self) -> LivenessState:
        return LivenessState()

    def step(self, state: LivenessState, pose: PoseEstimate, now: float) -> LivenessStep:
        state.yaw = pose.yaw
        state.abs_yaw = pose.abs_yaw
        state.last_face_at = now
        handler = {
            LivenessStage.CENTER: self._center,
            LivenessStage.LEFT: self._left,
            LivenessStage.RIGHT: self._right,
            LivenessStage.DONE: self._done,
        }[state.stage]
        result = handler(state, pose)
        state.instruction = result.instruction
        if result.advanced:
            logger.info(f"Liveness advanced to {state.stage.value}")
        return result

    def _center(self, state: LivenessState, pose: PoseEstimate) -> LivenessStep:
        cfg = self.cfg
        if not pose.inside_guide:
            state.center_hold = 0
            return LivenessStep(state.stage, "Center your face inside the circle")
        if pose.abs_yaw >= cfg.center_threshold:
            state.center_hold = 0
            hint = "Move your face slightly LEFT" if pose.yaw > 0 else "Move your face slightly RIGHT"
            return LivenessStep(state.stage, hint)
        state.center_hold += 1
        if state.center_hold >= cfg.hold_frames_center and not state.completed:
            state.stage = LivenessStage.LEFT
            state.center_hold = 0
            return LivenessStep(state.stage, "Turn your face LEFT", advanced=True)
        return LivenessStep(state.stage, "Hold still, looking straight ahead")

    def _left(self, state: LivenessState, pose: PoseEstimate) -> LivenessStep:
        cfg = self.cfg
        if pose.face_width < cfg.min_face_width:
            state.left_hold = 0
            return LivenessStep(state.stage, "Move closer to the camera")
        if pose.yaw < -cfg.turn_threshold:
            state.left_hold += 1
            if state.left_hold >= cfg.hold_frames_turn:
                state.stage = LivenessStage.RIGHT
                state.left_hold = 0
                return LivenessStep(state.stage, "Great! Now turn your face RIGHT", advanced=True)
            return LivenessStep(state.stage, "Hold it LEFT")
        state.left_hold = 0
        hint = "You're facing right. Turn LEFT" if pose.yaw > cfg.turn_threshold else "Turn a bit more LEFT"
        return LivenessStep(state.stage, hint)

    def _right(self, state: LivenessState, pose: PoseEstimate) -> LivenessStep:
        cfg = self.cfg
        if pose.face_width < cfg.min_face_width:
            state.right_hold = 0
            return LivenessStep(state.stage, "Move closer to the camera")
        if pose.yaw > cfg.turn_threshold:
            state.right_hold += 1
            if state.right_hold >= cfg.hold_frames_turn:
                state.right_hold = 0
                state.completed = True
                state.stage = LivenessStage.DONE
                state.center_hold = 0
                return LivenessStep(state.stage, "Great! Now look straight at the camera", advanced=True)
            return LivenessStep(state.stage, "Hold it RIGHT")
        state.right_hold = 0
        hint = "You're facing left. Turn RIGHT" if pose.yaw < -cfg.turn_threshold else "Turn a bit more RIGHT"
        return LivenessStep(state.stage, hint)

    def _done(self, state: LivenessState, pose: PoseEstimate) -> LivenessStep:
        cfg = self.cfg
        if pose.abs_yaw >= cfg.done_threshold:
            state.center_hold = 0
            return LivenessStep(state.stage, "Please look straight at the camera")
        state.center_hold += 1
        if state.center_hold >= cfg.hold_frames_center and not state.capture_triggered:
            state.capture_triggered = True
            logger.info("Liveness complete; triggering face capture")
            return LivenessStep(state.stage, "Capturing...", capture_trigger=True)
        if state.capture_triggered:
            return LivenessStep(state.stage, "Face captured")
        return LivenessStep(state.stage, "Hold still, looking straight ahead")

    def no_face(self, state: LivenessState, now: float) -> LivenessStep:
        state.yaw = None
        state.abs_yaw = None
        if state.last_face_at is None:
            state.last_face_at = now
        if now - state.last_face_at <= self.cfg.no_face_grace:
            return LivenessStep(state.stage, state.instruction)
        if self.cfg.no_face_policy == "reset":
            self._reset_holds(state)
        state.instruction = NO_FACE_TEXT
        return LivenessStep(state.stage, NO_FACE_TEXT)

    def _reset_holds(self, state: LivenessState) -> None:
        state.center_hold = 0
        state.left_hold = 0
        state.right_hold = 0

    def validate_manual_capture(self, state: LivenessState) -> Tuple[bool, str]:
        if state.abs_yaw is None:
            return False, "Please position your face in front of the camera"
        if state.abs_yaw >= self.cfg.center_threshold:
            return False, "Please look straight at the camera before capturing"
        return True, "Capturing..."

    def release_capture(self, state: LivenessState) -> None:
        """Allow the DONE trigger to fire again after a failed face capture."""
        state.capture_triggered = False
        state.center_hold = 0
