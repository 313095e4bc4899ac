import math

import numpy as np
import pytest

from motion_core.exercise_analysis.pose_utils import (
    Point2D,
    Point3D,
    angle_at,
    angle_with_horizontal,
    angle_with_vertical,
    get_valid_points,
    is_valid_landmark,
    point_to_line_distance,
    project_to_plane,
    round1,
    symmetry_score,
    to_point,
)
from motion_core.pose_detection.landmarks import NUM_LANDMARKS, BlazePoseLandmark as LM, Landmark3D, Pose3D


def test_right_angle():
    assert angle_at(Point3D(1, 0, 0), Point3D(0, 0, 0), Point3D(0, 1, 0)) == pytest.approx(90.0)


def test_angle_is_symmetric_and_bounded():
    rng = np.random.default_rng(7)
    for _ in range(50):
        a, v, b = (Point3D(*rng.uniform(-1, 1, 3)) for _ in range(3))
        angle = angle_at(a, v, b)
        assert 0.0 <= angle <= 180.0
        assert angle == pytest.approx(angle_at(b, v, a))


def test_degenerate_angle_is_straight():
    v = Point3D(0.5, 0.5, 0.0)
    assert angle_at(v, v, Point3D(0.1, 0.2, 0.0)) == 180.0
    assert angle_at(Point2D(0.1, 0.2), Point2D(0.5, 0.5), Point2D(0.5, 0.5)) == 180.0


def test_vertical_and_horizontal_angles():
    hip = Point3D(0.5, 0.6)
    assert angle_with_vertical(hip, Point3D(0.5, 0.3)) == pytest.approx(0.0)
    assert angle_with_vertical(hip, Point3D(0.8, 0.6)) == pytest.approx(90.0)
    assert angle_with_vertical(hip, hip) == 0.0
    assert angle_with_horizontal(Point3D(0, 0), Point3D(1, 1)) == pytest.approx(-45.0)
    assert angle_with_horizontal(Point3D(0, 0), Point3D(1, -1)) == pytest.approx(45.0)


def test_project_to_plane():
    p = Point3D(1.0, 2.0, 3.0)
    assert project_to_plane(p, "xy") == Point2D(1.0, 2.0)
    assert project_to_plane(p, "xz") == Point2D(1.0, 3.0)
    assert project_to_plane(p, "yz") == Point2D(2.0, 3.0)
    with pytest.raises(ValueError):
        project_to_plane(p, "zz")


def test_point_to_line_distance():
    assert point_to_line_distance(Point3D(0.5, 1.0), Point3D(0, 0), Point3D(1, 0)) == pytest.approx(1.0)
    # degenerate line falls back to point distance
    assert point_to_line_distance(Point3D(3, 4), Point3D(0, 0), Point3D(0, 0)) == pytest.approx(5.0)


@pytest.mark.parametrize("left, right, expected", [
    (90, 90, 100),
    (90, 105, 50),
    (90, 120, 0),
    (90, 150, 0),
])
def test_symmetry_score(left, right, expected):
    assert symmetry_score(left, right) == expected


def test_round1_rounds_half_up():
    assert round1(1.25) == 1.3
    assert round1(-0.04) == 0.0


def test_landmark_validity():
    assert is_valid_landmark(Landmark3D(0, 0, 0, 0.5))
    assert not is_valid_landmark(Landmark3D(0, 0, 0, 0.49))
    assert not is_valid_landmark(Landmark3D(0, 0, 0, None))
    assert not is_valid_landmark(None)
    assert to_point(Landmark3D(0.1, 0.2, 0.3)).confidence == 0.0


def test_get_valid_points_requires_every_landmark():
    landmarks = [None] * NUM_LANDMARKS
    landmarks[LM.LEFT_HIP] = Landmark3D(0.4, 0.5, 0.0, 0.9)
    landmarks[LM.LEFT_KNEE] = Landmark3D(0.4, 0.7, 0.0, 0.3)
    pose = Pose3D(landmarks)
    assert get_valid_points(pose, [LM.LEFT_HIP]) == [Point3D(0.4, 0.5, 0.0, 0.9)]
    assert get_valid_points(pose, [LM.LEFT_HIP, LM.LEFT_KNEE]) is None
    assert get_valid_points(pose, [LM.LEFT_HIP, LM.LEFT_KNEE], min_score=0.2) is not None
    assert get_valid_points(None, [LM.LEFT_HIP]) is None


def test_pose_needs_33_landmarks():
    with pytest.raises(ValueError):
        Pose3D([None] * 32)


def test_pose_from_array_marks_nan_rows_missing():
    data = np.zeros((NUM_LANDMARKS, 4))
    data[:, 3] = 0.8
    data[LM.NOSE] = np.nan
    pose = Pose3D.from_array(data)
    assert pose[LM.NOSE] is None
    assert pose[LM.LEFT_KNEE].confidence == pytest.approx(0.8)
    back = pose.to_array()
    assert math.isnan(back[LM.NOSE][0])


def test_pose_from_landmark_dict():
    pose = Pose3D.from_landmark_dict({"left_knee": [0.4, 0.7, 0.0, 0.9]})
    assert pose[LM.LEFT_KNEE] == Landmark3D(0.4, 0.7, 0.0, 0.9)
    assert pose[LM.RIGHT_KNEE] is None
    with pytest.raises(ValueError):
        Pose3D.from_landmark_dict({"tail": [0, 0]})
