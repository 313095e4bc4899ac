from typing import Dict, List, Optional, Tuple

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from ..pose_detection.landmarks import Pose3D
from .base_analyzer import (
    AnalyzerState,
    FeedbackItem,
    RepExerciseAnalyzer,
    RepPhase,
    evaluate_criterion,
    has_landmarks,
    message_for,
)
from .config_utils import load_pushup_config, require
from .pose_utils import Point3D, angle_at, distance_2d, drop_depth, midpoint, point_to_line_distance, round1
from .valgus_analyzer import analyze_arm_symmetry, analyze_elbow_valgus

_PUSHUP_CONFIG = load_pushup_config()

logger = get_logger("PushupAnalyzer")

ARMS = (LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST, LM.RIGHT_SHOULDER, LM.RIGHT_ELBOW, LM.RIGHT_WRIST)
TRUNK = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP, LM.LEFT_ANKLE, LM.RIGHT_ANKLE)


class PushupAnalyzer(RepExerciseAnalyzer):
    """
    Push-up form analysis driven by the mean elbow angle.

    The rep cycle reads up -> descending -> bottom -> ascending -> up.
    """

    def __init__(self, config=None):
        super().__init__(config if config is not None else _PUSHUP_CONFIG)
        labels = self.config.get("phase_labels", {})
        self.PHASE_LABELS = dict(self.PHASE_LABELS, **{RepPhase(k): v for k, v in labels.items()})
        depth = require(self.config, "depth")
        self.depth_start = float(require(depth, "start_angle"))
        self.depth_target = float(require(depth, "target_angle"))

    def get_exercise_name(self) -> str:
        return "pushup"

    def get_required_landmarks(self) -> List[LM]:
        return list(ARMS)

    def _primary_angle(self, pose: Pose3D) -> Optional[float]:
        points = self._collect_points(pose)
        if not has_landmarks(points, self.get_required_landmarks()):
            return None
        left, right = self._elbow_angles(points)
        return (left + right) / 2

    @staticmethod
    def _elbow_angles(points) -> Tuple[float, float]:
        left = angle_at(points[LM.LEFT_SHOULDER], points[LM.LEFT_ELBOW], points[LM.LEFT_WRIST])
        right = angle_at(points[LM.RIGHT_SHOULDER], points[LM.RIGHT_ELBOW], points[LM.RIGHT_WRIST])
        return left, right

    def depth_percent(self, elbow_angle: float) -> float:
        """Share of the travel from straight arms to the target bottom angle, 0-100."""
        span = self.depth_start - self.depth_target
        return float(np.clip((self.depth_start - elbow_angle) / span * 100, 0.0, 100.0))

    @staticmethod
    def hip_offset_angle(shoulder_center: Point3D, hip_center: Point3D, ankle_center: Point3D) -> Tuple[float, str]:
        """
        Angle of the hip away from the shoulder-ankle line and whether it sags or pikes.

        Image y grows downwards, so a hip below the line's midpoint is a sag.
        """
        length = distance_2d(shoulder_center, ankle_center)
        if length == 0:
            return 0.0, "sag"
        offset = point_to_line_distance(drop_depth(hip_center), drop_depth(shoulder_center), drop_depth(ankle_center))
        angle = float(np.degrees(np.arctan(2 * offset / length)))
        expected_y = (shoulder_center.y + ankle_center.y) / 2
        return angle, "sag" if hip_center.y > expected_y else "pike"

    def _evaluate(self, pose: Pose3D, state: AnalyzerState) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
        points = self._collect_points(pose)
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}

        if has_landmarks(points, ARMS):
            left, right = self._elbow_angles(points)
            average = (left + right) / 2
            raw.update(left_elbow_angle=round1(left), right_elbow_angle=round1(right))
            feedbacks["elbow_angle"] = evaluate_criterion(
                average, self.thresholds("elbow_angle"), self.curve, self.messages("elbow_angle"),
                angle_points=(LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST))
            depth = self.depth_percent(average)
            raw["depth_percent"] = round1(depth)
            feedbacks["depth"] = evaluate_criterion(depth, self.thresholds("depth"), self.curve, self.messages("depth"))

            symmetry = analyze_arm_symmetry(left, right)
            thresholds = self.thresholds("arm_symmetry")
            raw["arm_symmetry_score"] = symmetry.score
            feedbacks["arm_symmetry"] = FeedbackItem(
                level=symmetry.level,
                message=symmetry.message,
                value=float(symmetry.score),
                score=self.curve.score(symmetry.score, thresholds),
                ideal_range=thresholds.ideal,
                acceptable_range=thresholds.acceptable,
            )
        else:
            for name in ("elbow_angle", "depth", "arm_symmetry"):
                feedbacks[name] = FeedbackItem.unavailable(name)

        if has_landmarks(points, TRUNK):
            shoulder_center = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])
            hip_center = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
            ankle_center = midpoint(points[LM.LEFT_ANKLE], points[LM.RIGHT_ANKLE])
            alignment = abs(180 - angle_at(shoulder_center, hip_center, ankle_center))
            raw["body_alignment_angle"] = round1(alignment)
            feedbacks["body_alignment"] = evaluate_criterion(
                alignment, self.thresholds("body_alignment"), self.curve, self.messages("body_alignment"),
                angle_points=(LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_ANKLE))

            hip_angle, direction = self.hip_offset_angle(shoulder_center, hip_center, ankle_center)
            raw["hip_sag_angle"] = round1(hip_angle)
            thresholds = self.thresholds("hip_position")
            level = thresholds.classify(hip_angle)
            message, correction = message_for(self.messages("hip_position"), level, direction)
            feedbacks["hip_position"] = FeedbackItem(
                level=level,
                message=message,
                correction=correction,
                value=round1(hip_angle),
                score=self.curve.score(hip_angle, thresholds),
                ideal_range=thresholds.ideal,
                acceptable_range=thresholds.acceptable,
            )
        else:
            logger.debug("Body line landmarks not visible; skipping alignment checks")
            feedbacks["body_alignment"] = FeedbackItem.unavailable("body_alignment")
            feedbacks["hip_position"] = FeedbackItem.unavailable("hip_position")

        valgus = analyze_elbow_valgus(pose)
        if valgus is not None:
            thresholds = self.thresholds("elbow_valgus")
            raw.update(left_elbow_valgus=valgus.left_angle, right_elbow_valgus=valgus.right_angle)
            feedbacks["elbow_valgus"] = FeedbackItem(
                level=valgus.level,
                message=valgus.message,
                correction=valgus.correction,
                value=valgus.average_angle,
                score=self.curve.score(valgus.average_angle, thresholds),
                ideal_range=thresholds.ideal,
                acceptable_range=thresholds.acceptable,
                angle_points=(LM.LEFT_SHOULDER, LM.LEFT_ELBOW, LM.LEFT_WRIST),
            )
        else:
            feedbacks["elbow_valgus"] = FeedbackItem.unavailable("elbow_valgus")

        return feedbacks, raw, state
