from typing import Dict, List, Optional, Tuple

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from ..pose_detection.landmarks import Pose3D
from .alignment_checks import PelvisState, evaluate_shared_checks, facing_direction
from .base_analyzer import (
    AnalyzerState,
    FeedbackItem,
    RepExerciseAnalyzer,
    RepPhase,
    evaluate_criterion,
    has_landmarks,
)
from .config_utils import load_deadlift_config
from .pose_utils import angle_at, angle_with_vertical, distance_2d, midpoint, round1, symmetry_score

_DEADLIFT_CONFIG = load_deadlift_config()

logger = get_logger("DeadliftAnalyzer")

HINGE = (LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_KNEE, LM.RIGHT_SHOULDER, LM.RIGHT_HIP, LM.RIGHT_KNEE)
ANKLES = (LM.LEFT_ANKLE, LM.RIGHT_ANKLE)
WRISTS = (LM.LEFT_WRIST, LM.RIGHT_WRIST)


class DeadliftAnalyzer(RepExerciseAnalyzer):
    """
    Deadlift form analysis driven by the mean hip hinge (shoulder-hip-knee) angle.

    A rep runs lockout -> descent -> setup -> lift -> lockout. Criteria: hip
    hinge, knee bend, spine lean, bar path over the mid-foot and left/right
    symmetry, plus the shared neck, pelvic tilt and torso rotation checks.
    """

    STATE_CLASS = PelvisState

    def __init__(self, config=None):
        super().__init__(config if config is not None else _DEADLIFT_CONFIG)
        labels = self.config.get("phase_labels", {})
        self.PHASE_LABELS = dict(self.PHASE_LABELS, **{RepPhase(k): v for k, v in labels.items()})

    def get_exercise_name(self) -> str:
        return "deadlift"

    def get_required_landmarks(self) -> List[LM]:
        return list(HINGE)

    @staticmethod
    def _hip_angles(points) -> Tuple[float, float]:
        left = angle_at(points[LM.LEFT_SHOULDER], points[LM.LEFT_HIP], points[LM.LEFT_KNEE])
        right = angle_at(points[LM.RIGHT_SHOULDER], points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE])
        return left, right

    def _primary_angle(self, pose: Pose3D) -> Optional[float]:
        points = self._collect_points(pose)
        if not has_landmarks(points, self.get_required_landmarks()):
            return None
        left, right = self._hip_angles(points)
        return (left + right) / 2

    def _evaluate(self, pose: Pose3D, state: AnalyzerState) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
        points = self._collect_points(pose)
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}
        symmetry_scores: List[int] = []

        # Hip hinge
        if has_landmarks(points, HINGE):
            left_hip, right_hip = self._hip_angles(points)
            raw.update(left_hip_angle=round1(left_hip), right_hip_angle=round1(right_hip))
            feedbacks["hip_hinge"] = evaluate_criterion(
                (left_hip + right_hip) / 2, self.thresholds("hip_hinge"), self.curve, self.messages("hip_hinge"),
                angle_points=(LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_KNEE))
            symmetry_scores.append(symmetry_score(left_hip, right_hip))
        else:
            feedbacks["hip_hinge"] = FeedbackItem.unavailable("hip_hinge")

        # Knee
        legs = (LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_HIP, LM.RIGHT_KNEE, LM.RIGHT_ANKLE)
        if has_landmarks(points, legs):
            left_knee = angle_at(points[LM.LEFT_HIP], points[LM.LEFT_KNEE], points[LM.LEFT_ANKLE])
            right_knee = angle_at(points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE], points[LM.RIGHT_ANKLE])
            raw.update(left_knee_angle=round1(left_knee), right_knee_angle=round1(right_knee))
            feedbacks["knee_angle"] = evaluate_criterion(
                (left_knee + right_knee) / 2, self.thresholds("knee_angle"), self.curve, self.messages("knee_angle"),
                angle_points=(LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE))
            symmetry_scores.append(symmetry_score(left_knee, right_knee))
        else:
            feedbacks["knee_angle"] = FeedbackItem.unavailable("knee_angle")

        # Spine lean and bar path
        shoulders_and_hips = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP)
        if has_landmarks(points, shoulders_and_hips):
            hip_center = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
            shoulder_center = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])
            spine = angle_with_vertical(hip_center, shoulder_center)
            raw["torso_angle"] = round1(spine)
            feedbacks["spine_alignment"] = evaluate_criterion(
                spine, self.thresholds("spine_alignment"), self.curve, self.messages("spine_alignment"))

            torso_length = distance_2d(hip_center, shoulder_center)
            if has_landmarks(points, WRISTS + ANKLES) and torso_length > 0:
                bar = midpoint(points[LM.LEFT_WRIST], points[LM.RIGHT_WRIST])
                mid_foot = midpoint(points[LM.LEFT_ANKLE], points[LM.RIGHT_ANKLE])
                deviation = abs(bar.x - mid_foot.x) / torso_length * 100
                raw["bar_path_deviation"] = round1(deviation)
                feedbacks["bar_path"] = evaluate_criterion(
                    deviation, self.thresholds("bar_path"), self.curve, self.messages("bar_path"))
            else:
                logger.debug("Wrists or ankles not visible; bar path skipped")
                feedbacks["bar_path"] = FeedbackItem.unavailable("bar_path")
        else:
            feedbacks["spine_alignment"] = FeedbackItem.unavailable("spine_alignment")
            feedbacks["bar_path"] = FeedbackItem.unavailable("bar_path")

        # Symmetry
        if symmetry_scores:
            value = float(np.mean(symmetry_scores))
            raw["symmetry_score"] = round1(value)
            feedbacks["symmetry"] = evaluate_criterion(
                value, self.thresholds("symmetry"), self.curve, self.messages("symmetry"))
        else:
            feedbacks["symmetry"] = FeedbackItem.unavailable("symmetry")

        shared_feedbacks, shared_raw, state = evaluate_shared_checks(self, points, state, facing_direction(points))
        feedbacks.update(shared_feedbacks)
        raw.update(shared_raw)
        return feedbacks, raw, state
