import pytest

from motion_core.exercise_analysis.alignment_checks import PelvisState
from motion_core.exercise_analysis.base_analyzer import CorrectionDirection, FeedbackLevel, RepPhase
from motion_core.exercise_analysis.deadlift_analyzer import DeadliftAnalyzer

from conftest import build_pose, deadlift_coords

# Hip hinge angles of one deadlift, lockout to setup and back.
DEADLIFT_REP_ANGLES = [180, 178, 170, 150, 130, 115, 100, 98, 100, 110, 130, 150, 165, 175, 180]


@pytest.fixture
def analyzer():
    return DeadliftAnalyzer()


@pytest.fixture
def deadlift_pose():
    def make(hip_angle=98.0, knee_angle=150.0, **kwargs):
        return build_pose(deadlift_coords(hip_angle, knee_angle, **kwargs))
    return make


def test_lockout_label(analyzer, deadlift_pose):
    result, state = analyzer.step(analyzer.create_initial_state(), deadlift_pose(180, 180))
    assert result.phase == RepPhase.STANDING
    assert result.phase_label == "lockout"
    assert result.feedbacks["hip_hinge"].level == FeedbackLevel.ERROR
    assert isinstance(state, PelvisState)


def test_good_setup(analyzer, deadlift_pose):
    state = analyzer.create_initial_state()
    _, state = analyzer.step(state, deadlift_pose(180, 180))
    _, state = analyzer.step(state, deadlift_pose(130, 165))
    result, state = analyzer.step(state, deadlift_pose())

    assert result.phase_label == "setup"
    assert result.primary_angle == pytest.approx(98.0)
    assert result.level == FeedbackLevel.GOOD
    assert set(result.feedbacks) == set(analyzer.weights)
    assert result.raw_angles["left_knee_angle"] == pytest.approx(150.0)
    assert result.raw_angles["torso_angle"] == pytest.approx(62.0)
    assert result.raw_angles["bar_path_deviation"] == 0.0
    assert result.feedbacks["symmetry"].value == 100.0
    assert result.raw_angles["forward_head_posture"] == 0.0
    assert not result.feedbacks["pelvic_tilt"].available


def test_bar_drifting_forward(analyzer, deadlift_pose):
    result, _ = analyzer.step(analyzer.create_initial_state(), deadlift_pose(bar_offset=0.02))
    bar = result.feedbacks["bar_path"]
    assert bar.level == FeedbackLevel.WARNING
    assert bar.value == pytest.approx(8.0)
    assert bar.correction == CorrectionDirection.INWARD

    result, _ = analyzer.step(analyzer.create_initial_state(), deadlift_pose(bar_offset=0.05))
    assert result.feedbacks["bar_path"].level == FeedbackLevel.ERROR
    assert result.score <= 49


def test_head_pushed_forward(analyzer, deadlift_pose):
    result, _ = analyzer.step(analyzer.create_initial_state(), deadlift_pose(head_forward=0.035))
    neck = result.feedbacks["neck_alignment"]
    assert result.raw_angles["forward_head_posture"] == pytest.approx(14.0)
    assert neck.level == FeedbackLevel.WARNING
    assert neck.correction == CorrectionDirection.BACKWARD


def test_rounded_over_setup(analyzer, deadlift_pose):
    result, _ = analyzer.step(analyzer.create_initial_state(), deadlift_pose(80, 150))
    spine = result.feedbacks["spine_alignment"]
    assert spine.level == FeedbackLevel.ERROR
    assert spine.value == pytest.approx(80.0)


def test_counts_one_rep(analyzer, deadlift_pose):
    state = analyzer.create_initial_state()
    labels = []
    reps = 0
    for angle in DEADLIFT_REP_ANGLES:
        knee = 150 + (angle - 90) / 3
        result, state = analyzer.step(state, deadlift_pose(angle, knee))
        labels.append(result.phase_label)
        reps += result.rep_completed
    assert reps == 1
    assert state.rep_count == 1
    assert labels[0] == "lockout"
    assert labels[-1] == "lockout"
    assert {"descent", "setup", "lift"} <= set(labels)


def test_dropped_frame_keeps_state(analyzer, deadlift_pose):
    state = analyzer.create_initial_state()
    _, state = analyzer.step(state, deadlift_pose(180, 180))
    result, same = analyzer.step(state, None)
    assert same is state
    assert result.score == 0
