import pytest

from motion_core.exercise_analysis.base_analyzer import FeedbackLevel, RepPhase
from motion_core.exercise_analysis.static_posture_analyzer import PostureView, StaticPostureAnalyzer
from motion_core.pose_detection.landmarks import BlazePoseLandmark as LM

from conftest import build_pose, side_posture_coords, squat_coords


def side_pose(**kwargs):
    coords = side_posture_coords(**kwargs)
    # the far (right) side is tracked less confidently
    confidence = {index: 0.95 if index.name.startswith("LEFT_") else 0.6 for index in coords}
    return build_pose(coords, confidence)


@pytest.fixture
def analyzer():
    return StaticPostureAnalyzer()


def test_upright_front_view(analyzer, standing_pose):
    result, state = analyzer.step(analyzer.create_initial_state(), standing_pose)
    assert result.view == "front"
    assert set(result.feedbacks) == set(analyzer.view_criteria[PostureView.FRONT])
    assert all(item.level == FeedbackLevel.GOOD for item in result.feedbacks.values())
    assert result.score == 100
    assert result.phase == RepPhase.STATIC
    assert result.rep_count == 0
    assert state.frames_processed == 1


def test_tilted_shoulders(analyzer):
    coords = squat_coords(180)
    x, y, z = coords[LM.RIGHT_SHOULDER]
    coords[LM.RIGHT_SHOULDER] = (x, y + 0.02, z)
    result, _ = analyzer.step(analyzer.create_initial_state(), build_pose(coords))
    assert result.view == "front"
    assert result.feedbacks["shoulder_tilt"].value == pytest.approx(8.0, abs=0.2)
    assert result.feedbacks["shoulder_tilt"].level == FeedbackLevel.ERROR
    assert result.feedbacks["pelvic_tilt"].level == FeedbackLevel.GOOD
    assert result.level == FeedbackLevel.ERROR


def test_side_view_is_detected_from_confidence_gap(analyzer):
    assert analyzer.detect_view(side_pose()) == PostureView.SIDE


def test_side_view_criteria(analyzer):
    result, _ = analyzer.step(analyzer.create_initial_state(), side_pose())
    assert result.view == "side"
    assert set(result.feedbacks) == set(analyzer.view_criteria[PostureView.SIDE])
    assert result.feedbacks["forward_head"].value == 0.0
    assert result.feedbacks["forward_head"].level == FeedbackLevel.GOOD
    assert result.feedbacks["neck_angle"].level == FeedbackLevel.GOOD
    assert result.feedbacks["shoulder_forward_roll"].value == 180.0
    assert result.feedbacks["scapula_position"].level == FeedbackLevel.GOOD


def test_forward_head(analyzer):
    result, _ = analyzer.step(analyzer.create_initial_state(), side_pose(ear_forward=0.05))
    assert result.feedbacks["forward_head"].value == pytest.approx(20.0)
    assert result.feedbacks["forward_head"].level == FeedbackLevel.ERROR


def test_fixed_view(standing_pose):
    analyzer = StaticPostureAnalyzer(view=PostureView.SIDE)
    result, _ = analyzer.step(analyzer.create_initial_state(), standing_pose)
    assert result.view == "side"


def test_missing_body_defaults_to_front(analyzer):
    assert analyzer.detect_view(None) == PostureView.FRONT
    result, state = analyzer.step(analyzer.create_initial_state(), None)
    assert result.level is None
    assert result.view == "front"
    assert state.phase == RepPhase.STATIC
