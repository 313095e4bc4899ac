import pytest

from motion_core.exercise_analysis.base_analyzer import (
    AnalysisResult,
    AnalyzerState,
    CorrectionDirection,
    FeedbackItem,
    FeedbackLevel,
    RepPhase,
)
from motion_core.feedback import FeedbackSelector, merge_feedback
from motion_core.feedback.feedback_selector import GOOD_REP_MESSAGE

WEIGHTS = {"knee_angle": 0.19, "hip_angle": 0.14, "torso_inclination": 0.12}


def make_result(levels, rep_completed=False):
    feedbacks = {
        name: FeedbackItem(level=level, message=f"{name} {level.value}", correction=CorrectionDirection.DOWN)
        if level is not None else FeedbackItem.unavailable(name)
        for name, level in levels.items()
    }
    worst = max((lvl for lvl in levels.values() if lvl is not None), default=None)
    return AnalysisResult(
        score=90, level=worst, phase=RepPhase.STANDING, phase_label="standing", feedbacks=feedbacks,
        raw_angles={}, rep_completed=rep_completed, rep_count=1 if rep_completed else 0,
        primary_angle=170.0, new_state=AnalyzerState(),
    )


GOOD = {"knee_angle": FeedbackLevel.GOOD, "hip_angle": FeedbackLevel.GOOD}
KNEE_WARNING = {"knee_angle": FeedbackLevel.WARNING, "hip_angle": FeedbackLevel.GOOD}


@pytest.fixture
def selector():
    return FeedbackSelector(WEIGHTS)


def test_violation_must_persist(selector):
    assert selector.select(make_result(KNEE_WARNING), 0.0) is None
    cue = selector.select(make_result(KNEE_WARNING), 0.1)
    assert cue.criterion == "knee_angle"
    assert cue.level == FeedbackLevel.WARNING
    assert cue.message == "knee_angle warning"
    assert cue.correction == CorrectionDirection.DOWN


def test_cooldown_between_cues(selector):
    selector.select(make_result(KNEE_WARNING), 0.0)
    assert selector.select(make_result(KNEE_WARNING), 0.1) is not None
    assert selector.select(make_result(KNEE_WARNING), 1.0) is None
    assert selector.select(make_result(KNEE_WARNING), 4.2) is not None


def test_changing_violation_restarts_debounce(selector):
    hip = {"knee_angle": FeedbackLevel.GOOD, "hip_angle": FeedbackLevel.WARNING}
    assert selector.select(make_result(KNEE_WARNING), 0.0) is None
    assert selector.select(make_result(hip), 0.1) is None
    assert selector.select(make_result(hip), 0.2).criterion == "hip_angle"


def test_errors_beat_warnings_then_weight_then_name(selector):
    levels = {"knee_angle": FeedbackLevel.WARNING, "hip_angle": FeedbackLevel.ERROR,
              "torso_inclination": FeedbackLevel.ERROR}
    selector.select(make_result(levels), 0.0)
    assert selector.select(make_result(levels), 0.1).criterion == "hip_angle"

    unweighted = FeedbackSelector()
    levels = {"b_item": FeedbackLevel.WARNING, "a_item": FeedbackLevel.WARNING}
    unweighted.select(make_result(levels), 0.0)
    assert unweighted.select(make_result(levels), 0.1).criterion == "a_item"


def test_unavailable_items_are_ignored(selector):
    levels = {"knee_angle": None, "hip_angle": FeedbackLevel.GOOD}
    assert selector.select(make_result(levels), 0.0) is None
    assert selector.select(make_result(levels), 0.1) is None


def test_good_rep_is_praised(selector):
    assert selector.select(make_result(GOOD), 0.0) is None
    cue = selector.select(make_result(GOOD, rep_completed=True), 0.5)
    assert cue.criterion is None
    assert cue.level == FeedbackLevel.GOOD
    assert cue.message == GOOD_REP_MESSAGE


def test_reset_clears_cooldown(selector):
    selector.select(make_result(GOOD, rep_completed=True), 0.0)
    selector.reset()
    assert selector.select(make_result(GOOD, rep_completed=True), 0.5) is not None


def test_merge_feedback():
    warning = FeedbackItem(level=FeedbackLevel.WARNING, message="w")
    error = FeedbackItem(level=FeedbackLevel.ERROR, message="e")
    other_warning = FeedbackItem(level=FeedbackLevel.WARNING, message="w2")
    missing = FeedbackItem.unavailable("knee_angle")
    assert merge_feedback(warning, error) is error
    assert merge_feedback(error, warning) is error
    assert merge_feedback(warning, other_warning) is warning
    assert merge_feedback(missing, warning) is warning
    assert merge_feedback(warning, missing) is warning
    assert merge_feedback(None, None) is None
