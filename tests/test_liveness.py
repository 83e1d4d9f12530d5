from kyc_capture.app.config import LivenessConfig
from kyc_capture.models.base import LivenessStage
from kyc_capture.pipeline.liveness import NO_FACE_TEXT, LivenessStateMachine
from kyc_capture.pipeline.pose import PoseEstimate


def pose(yaw=0.0, inside=True, width=0.2):
    return PoseEstimate(yaw=yaw, abs_yaw=abs(yaw), face_width=width, inside_guide=inside, bbox=(0, 0, 1, 1))


def run(machine, state, yaw, n, t0=0.0):
    steps = [machine.step(state, pose(yaw), t0 + i * 0.033) for i in range(n)]
    return steps


def test_centre_hold_broken_by_one_bad_frame():
    m = LivenessStateMachine()
    s = m.new_state()
    run(m, s, 0.0, 11)
    m.step(s, pose(0.1), 1.0)
    run(m, s, 0.0, 11)
    assert s.stage == LivenessStage.CENTER


def test_twelve_good_frames_advance_once():
    m = LivenessStateMachine()
    s = m.new_state()
    steps = run(m, s, 0.0, 12)
    assert s.stage == LivenessStage.LEFT
    assert [st.advanced for st in steps].count(True) == 1
    assert steps[-1].advanced


def test_leaving_guide_resets_centre_hold():
    m = LivenessStateMachine()
    s = m.new_state()
    run(m, s, 0.0, 5)
    step = m.step(s, pose(0.0, inside=False), 1.0)
    assert s.center_hold == 0
    assert "circle" in step.instruction


def test_full_challenge_triggers_capture_once():
    m = LivenessStateMachine()
    s = m.new_state()
    steps = []
    steps += run(m, s, 0.0, 12)
    assert s.stage == LivenessStage.LEFT
    steps += run(m, s, -0.2, 12)
    assert s.stage == LivenessStage.RIGHT
    steps += run(m, s, 0.2, 12)
    assert s.stage == LivenessStage.DONE
    assert s.completed
    steps += run(m, s, 0.0, 12)
    triggers = [i for i, st in enumerate(steps) if st.capture_trigger]
    assert triggers == [47]
    more = run(m, s, 0.0, 20)
    assert not any(st.capture_trigger for st in more)


def test_completed_session_does_not_restart_from_centre():
    m = LivenessStateMachine()
    s = m.new_state()
    s.completed = True
    run(m, s, 0.0, 30)
    assert s.stage == LivenessStage.CENTER


def test_small_face_asked_to_move_closer():
    m = LivenessStateMachine()
    s = m.new_state()
    run(m, s, 0.0, 12)
    step = m.step(s, pose(-0.2, width=0.05), 1.0)
    assert step.instruction == "Move closer to the camera"
    assert s.left_hold == 0


def test_turn_hints():
    m = LivenessStateMachine()
    s = m.new_state()
    run(m, s, 0.0, 12)
    assert m.step(s, pose(0.2), 1.0).instruction == "You're facing right. Turn LEFT"
    assert m.step(s, pose(-0.02), 1.1).instruction == "Turn a bit more LEFT"


def test_no_face_grace_then_message():
    m = LivenessStateMachine()
    s = m.new_state()
    run(m, s, 0.0, 5)
    before = s.instruction
    assert m.no_face(s, 1.0).instruction == before
    assert s.yaw is None
    assert m.no_face(s, 3.0).instruction == NO_FACE_TEXT
    assert s.center_hold == 5


def test_no_face_reset_policy_clears_holds():
    m = LivenessStateMachine(LivenessConfig(no_face_policy="reset"))
    s = m.new_state()
    run(m, s, 0.0, 5)
    m.no_face(s, 5.0)
    assert s.center_hold == 0


def test_manual_capture_validation():
    m = LivenessStateMachine()
    s = m.new_state()
    ok, msg = m.validate_manual_capture(s)
    assert not ok and msg == "Please position your face in front of the camera"
    m.step(s, pose(0.2), 0.0)
    ok, msg = m.validate_manual_capture(s)
    assert not ok and msg == "Please look straight at the camera before capturing"
    m.step(s, pose(0.01), 0.1)
    ok, _ = m.validate_manual_capture(s)
    assert ok


def test_release_capture_allows_retrigger():
    m = LivenessStateMachine()
    s = m.new_state()
    s.stage = LivenessStage.DONE
    s.completed = True
    steps = run(m, s, 0.0, 12)
    assert steps[-1].capture_trigger
    m.release_capture(s)
    steps = run(m, s, 0.0, 12)
    assert steps[-1].capture_trigger
