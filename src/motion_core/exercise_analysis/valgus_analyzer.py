"""
Frontal-plane joint deviation (valgus/varus) analysis for elbows and knees.

Positive angles mean valgus: the distal segment flares outward from the line
extending the proximal segment. Negative angles mean varus: it collapses inward.
Left and right sides use mirrored sign conventions.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..pose_detection.landmarks import BlazePoseLandmark, Pose3D
from .base_analyzer import CorrectionDirection, CriterionThresholds, FeedbackLevel, ValueRange, message_for
from .config_utils import load_config, require
from .pose_utils import Point3D, get_valid_points, project_to_plane, round1, symmetry_score

_VALGUS_CONFIG = load_config("valgus_config")


class DeviationJoint(Enum):
    ELBOW = "elbow"
    KNEE = "knee"

    @property
    def parts(self) -> Tuple[str, str, str]:
        """(proximal, joint, distal) body parts."""
        return _JOINT_PARTS[self]


_JOINT_PARTS = {
    DeviationJoint.ELBOW: ("shoulder", "elbow", "wrist"),
    DeviationJoint.KNEE: ("hip", "knee", "ankle"),
}


@dataclass(frozen=True)
class JointDeviationResult:
    joint: DeviationJoint
    left_angle: float
    right_angle: float
    average_angle: float
    symmetry_score: int
    level: FeedbackLevel
    deviation_type: str  # "valgus", "varus" or "neutral"
    message: str
    correction: CorrectionDirection


@dataclass(frozen=True)
class ArmSymmetryResult:
    score: int
    level: FeedbackLevel
    message: str


def _thresholds() -> CriterionThresholds:
    t = require(_VALGUS_CONFIG, "thresholds")
    return CriterionThresholds(ValueRange.from_config(require(t, "ideal")),
                               ValueRange.from_config(require(t, "acceptable")))


def single_side_deviation(proximal: Point3D, joint: Point3D, distal: Point3D, side: str) -> float:
    """
    Signed deviation angle of one limb in the frontal plane.

    The distal point is compared with where it would sit if the distal segment
    continued the proximal one; the horizontal offset over the distal segment
    length gives the angle through arcsine.
    """
    proximal_xy = project_to_plane(proximal, "xy")
    joint_xy = project_to_plane(joint, "xy")
    distal_xy = project_to_plane(distal, "xy")

    expected_x = joint_xy.x + (joint_xy.x - proximal_xy.x)
    deviation_x = distal_xy.x - expected_x
    segment_length = float(np.hypot(distal_xy.x - joint_xy.x, distal_xy.y - joint_xy.y))
    if segment_length == 0:
        return 0.0

    angle = float(np.degrees(np.arcsin(min(1.0, abs(deviation_x) / segment_length))))
    if side == "left":
        return angle if deviation_x < 0 else -angle
    return angle if deviation_x > 0 else -angle


def _deviation_type(left_angle: float, right_angle: float) -> str:
    net = left_angle + right_angle
    if net > 0:
        return "valgus"
    if net < 0:
        return "varus"
    return "neutral"


def analyze_joint_deviation(pose: Optional[Pose3D], joint: DeviationJoint) -> Optional[JointDeviationResult]:
    """
    Valgus/varus angle of both sides of ``joint``.

    Returns None when any of the six landmarks is missing or below the
    minimum confidence; callers skip the metric for that frame.
    """
    min_score = float(_VALGUS_CONFIG.get("min_landmark_score", 0.5))
    proximal, middle, distal = joint.parts
    indices = [BlazePoseLandmark.side(side, part)
               for side in ("left", "right")
               for part in (proximal, middle, distal)]
    points = get_valid_points(pose, indices, min_score)
    if points is None:
        return None

    left = single_side_deviation(points[0], points[1], points[2], "left")
    right = single_side_deviation(points[3], points[4], points[5], "right")
    average = (abs(left) + abs(right)) / 2

    level = _thresholds().classify(average)
    deviation_type = _deviation_type(left, right)
    messages = require(_VALGUS_CONFIG, "joints", joint.value, "messages")
    message, correction = message_for(messages, level, deviation_type)

    return JointDeviationResult(
        joint=joint,
        left_angle=round1(left),
        right_angle=round1(right),
        average_angle=round1(average),
        symmetry_score=symmetry_score(left, right),
        level=level,
        deviation_type=deviation_type,
        message=message,
        correction=correction,
    )


def analyze_elbow_valgus(pose: Optional[Pose3D]) -> Optional[JointDeviationResult]:
    return analyze_joint_deviation(pose, DeviationJoint.ELBOW)


def analyze_knee_valgus(pose: Optional[Pose3D]) -> Optional[JointDeviationResult]:
    return analyze_joint_deviation(pose, DeviationJoint.KNEE)


def analyze_arm_symmetry(left_elbow_angle: float, right_elbow_angle: float) -> ArmSymmetryResult:
    cfg = require(_VALGUS_CONFIG, "arm_symmetry")
    score = symmetry_score(left_elbow_angle, right_elbow_angle)
    if score >= require(cfg, "good_min"):
        level = FeedbackLevel.GOOD
    elif score >= require(cfg, "warning_min"):
        level = FeedbackLevel.WARNING
    else:
        level = FeedbackLevel.ERROR
    return ArmSymmetryResult(score=score, level=level, message=require(cfg, "messages", level.value))
