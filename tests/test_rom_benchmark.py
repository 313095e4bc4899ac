import math

import pytest

from motion_core.exceptions import ConfigurationError
from motion_core.exercise_analysis.base_analyzer import FeedbackLevel
from motion_core.exercise_analysis.rom_benchmark import (
    ROM_BENCHMARKS,
    JointROMTracker,
    MobilityAssessment,
    Priority,
    RecommendationType,
    compare_rom_to_baseline,
    compare_to_benchmark,
    create_deadlift_rom_tracker,
    create_lunge_rom_tracker,
    create_rom_tracker,
    create_squat_rom_tracker,
    get_benchmark,
    with_user_overrides,
)


def knee_session(low, start=0.0):
    tracker = create_squat_rom_tracker()
    tracker.start(start)
    tracker.record_angle("knee_flexion", 170.0, "left")
    tracker.record_angle("knee_flexion", low, "left")
    return tracker.summary(start + 30.0)


def test_full_range_is_normal():
    comparison = compare_to_benchmark(135, "knee_flexion")
    assert comparison.percent_of_benchmark == 100.0
    assert comparison.assessment == MobilityAssessment.NORMAL
    assert comparison.level == FeedbackLevel.GOOD
    assert comparison.message == "Knee Flexion mobility is within normal range (100%)"


@pytest.mark.parametrize("achieved, assessment, level", [
    (90, MobilityAssessment.LIMITED, FeedbackLevel.ERROR),
    (110, MobilityAssessment.LIMITED, FeedbackLevel.WARNING),
    (120, MobilityAssessment.NORMAL, FeedbackLevel.GOOD),
    (145, MobilityAssessment.EXCESSIVE, FeedbackLevel.WARNING),
])
def test_assessment_levels(achieved, assessment, level):
    comparison = compare_to_benchmark(achieved, "knee_flexion")
    assert comparison.assessment == assessment
    assert comparison.level == level


def test_limited_message_shows_percent():
    assert compare_to_benchmark(110, "knee_flexion").message == "Knee Flexion mobility is limited (81%)"


def test_alias_and_missing_benchmark():
    assert get_benchmark("torso_flexion") is ROM_BENCHMARKS["torso_angle"]
    with pytest.raises(ConfigurationError):
        compare_to_benchmark(40, "elbow_flexion")
    with pytest.raises(KeyError):
        get_benchmark("wrist_flexion")


def test_user_overrides():
    calibrated = with_user_overrides({"knee_flexion": {"normal_range": {"min": 0, "max": 100},
                                                       "limited_threshold": 80}})
    comparison = compare_to_benchmark(100, "knee_flexion", calibrated)
    assert comparison.percent_of_benchmark == 100.0
    assert comparison.assessment == MobilityAssessment.NORMAL
    assert calibrated["knee_flexion"].excessive_threshold == 145
    assert ROM_BENCHMARKS["knee_flexion"].normal_range.max == 135
    with pytest.raises(ConfigurationError):
        with_user_overrides({"elbow_flexion": {"name": "Elbow Flexion"}})


def test_tracker_summary_and_recommendations():
    tracker = create_squat_rom_tracker()
    assert tracker.summary(0.0) is None
    tracker.start(10.0)
    assert tracker.summary(11.0) is None
    for angle in (170.0, 100.0, 40.0):
        tracker.record_angle("knee_flexion", angle, "left")
    for angle in (170.0, 20.0):
        tracker.record_angle("knee_flexion", angle, "right")
    for angle in (170.0, 90.0):
        tracker.record_angle("hip_flexion", angle, "left")

    summary = tracker.summary(25.4)
    assert summary.duration == 15
    assert summary.start_time == 10.0
    results = {(r.joint, r.side): r for r in summary.joints}
    assert results[("knee_flexion", "left")].range_achieved == 130.0
    assert results[("knee_flexion", "left")].assessment == MobilityAssessment.NORMAL
    assert results[("knee_flexion", "right")].assessment == MobilityAssessment.EXCESSIVE
    assert results[("hip_flexion", "left")].percent_of_normal == pytest.approx(66.7)
    assert summary.overall_mobility == MobilityAssessment.EXCESSIVE

    recommendations = summary.recommendations
    assert [r.priority for r in recommendations] == [Priority.HIGH, Priority.MEDIUM, Priority.LOW]
    assert recommendations[0].type == RecommendationType.STRETCH
    assert recommendations[0].joint == "hip_flexion"
    assert recommendations[0].exercises
    assert recommendations[1].type == RecommendationType.STRENGTHEN
    assert recommendations[2].type == RecommendationType.MAINTAIN


def test_mostly_limited_session():
    tracker = create_lunge_rom_tracker()
    tracker.start(0.0)
    for joint in ("knee_flexion", "hip_flexion"):
        tracker.record_angle(joint, 170.0, "left")
        tracker.record_angle(joint, 120.0, "left")
    assert tracker.summary(5.0).overall_mobility == MobilityAssessment.LIMITED


def test_rejected_samples():
    tracker = create_squat_rom_tracker()
    assert not tracker.record_angle("knee_flexion", 120.0, "left")
    tracker.start(0.0)
    assert not tracker.record_angle("knee_flexion", math.nan, "left")
    assert not tracker.record_angle("knee_flexion", -5.0, "left")
    assert not tracker.record_angle("knee_flexion", 400.0, "left")
    assert not tracker.record_angle("knee_flexion", None, "left")
    assert not tracker.record_angle("torso_angle", 40.0)
    assert tracker.record_angle("knee_flexion", 120.0, "left")
    assert tracker.current_stats() == [{"joint": "knee_flexion", "side": "left", "min": 120.0, "max": 120.0, "current": 120.0}]


def test_pooled_sides_when_not_bilateral():
    tracker = create_deadlift_rom_tracker()
    tracker.start(0.0)
    tracker.record_angle("torso_flexion", 10.0, "left")
    tracker.record_angle("torso_angle", 70.0, "right")
    (stats,) = tracker.current_stats()
    assert stats["side"] is None
    assert (stats["min"], stats["max"]) == (10.0, 70.0)


def test_stop():
    tracker = create_squat_rom_tracker()
    tracker.start(0.0)
    tracker.record_angle("ankle_angle", 60.0, "left")
    tracker.record_angle("ankle_angle", 75.0, "left")
    summary = tracker.stop(8.0)
    assert summary.joints[0].range_achieved == 15.0
    assert not tracker.is_tracking
    assert tracker.stop(9.0) is None


def test_baseline_comparison():
    changes = compare_rom_to_baseline(knee_session(40.0), knee_session(60.0))
    assert len(changes) == 1
    assert changes[0].change == 20.0
    assert changes[0].improved


def test_tracker_factories():
    assert create_rom_tracker("squat").bilateral
    assert not create_deadlift_rom_tracker().bilateral
    with pytest.raises(ConfigurationError):
        create_rom_tracker("plank")
    with pytest.raises(ConfigurationError):
        JointROMTracker("curl", ["elbow_flexion"])
