from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from ..pose_detection.landmarks import Pose3D
from .alignment_checks import PelvisState, evaluate_shared_checks
from .base_analyzer import (
    AnalyzerState,
    FeedbackItem,
    FeedbackLevel,
    RepExerciseAnalyzer,
    RepPhase,
    evaluate_criterion,
    has_landmarks,
    message_for,
)
from .config_utils import load_squat_config, require
from .pose_utils import (
    angle_at,
    angle_with_vertical,
    distance_2d,
    drop_depth,
    midpoint,
    point_to_line_distance,
    round1,
    symmetry_score,
)

_SQUAT_CONFIG = load_squat_config()

logger = get_logger("SquatAnalyzer")

LEGS = (LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_HIP, LM.RIGHT_KNEE, LM.RIGHT_ANKLE)
HIPS_AND_SHOULDERS = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP)
HIP_ANGLE_POINTS = (LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_KNEE, LM.RIGHT_SHOULDER, LM.RIGHT_HIP, LM.RIGHT_KNEE)
ANKLE_ANGLE_POINTS = (LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.LEFT_FOOT_INDEX,
                      LM.RIGHT_KNEE, LM.RIGHT_ANKLE, LM.RIGHT_FOOT_INDEX)
HEELS = (LM.LEFT_HEEL, LM.RIGHT_HEEL)


@dataclass(frozen=True)
class SquatState(PelvisState):
    """Squat state; also remembers the standing knee deviation used as the valgus baseline."""
    baseline_knee_deviation: Optional[Tuple[float, float]] = None
    peak_knee_deviation: float = 0.0


@dataclass(frozen=True)
class KneeAlignment:
    left_degrees: float
    right_degrees: float
    left_type: str
    right_type: str
    dynamic_change: float
    peak_deviation: float


class SquatAnalyzer(RepExerciseAnalyzer):
    """
    Squat form analysis driven by the mean knee angle.

    Criteria: knee angle, hip angle, torso inclination, knee valgus (frontal-plane
    deviation with a 2D width fallback), ankle dorsiflexion with heel-rise detection,
    the average left/right symmetry of knee, hip and ankle, and the shared neck,
    pelvic tilt and torso rotation checks.
    """

    STATE_CLASS = SquatState

    def __init__(self, config=None):
        super().__init__(config if config is not None else _SQUAT_CONFIG)
        deviation = require(self.config, "knee_deviation")
        self.neutral_deviation = float(require(deviation, "neutral_max"))
        self.dynamic_change_warning = float(require(deviation, "dynamic_change_warning"))
        self.heel_rise_ratio = float(require(self.config, "heel_rise_ratio"))

    def get_exercise_name(self) -> str:
        return "squat"

    def get_required_landmarks(self) -> List[LM]:
        return list(LEGS)

    def _primary_angle(self, pose: Pose3D) -> Optional[float]:
        points = self._collect_points(pose)
        if not has_landmarks(points, self.get_required_landmarks()):
            return None
        return self._mean_knee_angle(points)

    @staticmethod
    def _mean_knee_angle(points) -> float:
        left = angle_at(points[LM.LEFT_HIP], points[LM.LEFT_KNEE], points[LM.LEFT_ANKLE])
        right = angle_at(points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE], points[LM.RIGHT_ANKLE])
        return (left + right) / 2

    # --- Knee alignment ---
    def _deviation_type(self, degrees: float) -> str:
        if abs(degrees) <= self.neutral_deviation:
            return "neutral"
        return "valgus" if degrees > 0 else "varus"

    def knee_alignment(self, points, baseline: Optional[Tuple[float, float]] = None) -> Optional[KneeAlignment]:
        """
        Frontal-plane deviation of each knee from its hip-ankle line, in degrees.

        Depth is dropped so that the forward travel of a bent knee does not
        count as deviation. Positive values are medial (valgus), negative
        lateral (varus). Returns None when either leg has zero frontal length.
        """
        sides = []
        for side in ("left", "right"):
            hip = drop_depth(points[LM.side(side, "hip")])
            knee = drop_depth(points[LM.side(side, "knee")])
            ankle = drop_depth(points[LM.side(side, "ankle")])
            leg_length = distance_2d(hip, ankle)
            if leg_length == 0:
                return None
            distance = point_to_line_distance(knee, hip, ankle)
            mid_x = (hip.x + ankle.x) / 2
            medial = knee.x > mid_x if side == "left" else knee.x < mid_x
            degrees = float(np.degrees(np.arcsin(min(1.0, distance / leg_length))))
            sides.append(degrees if medial else -degrees)

        left, right = sides
        dynamic_change = 0.0
        if baseline is not None:
            dynamic_change = (left + right) / 2 - (baseline[0] + baseline[1]) / 2
        return KneeAlignment(
            left_degrees=round1(left),
            right_degrees=round1(right),
            left_type=self._deviation_type(left),
            right_type=self._deviation_type(right),
            dynamic_change=round1(dynamic_change),
            peak_deviation=max(abs(left), abs(right)),
        )

    def _knee_valgus_feedback(self, alignment: KneeAlignment) -> FeedbackItem:
        value = (abs(alignment.left_degrees) + abs(alignment.right_degrees)) / 2
        thresholds = self.thresholds("knee_valgus")
        level = thresholds.classify(value)
        types = (alignment.left_type, alignment.right_type)
        if "valgus" in types:
            kind = "valgus"
        elif "varus" in types:
            kind = "varus"
        else:
            kind = "neutral"
        messages = self.messages("knee_valgus")
        message, correction = message_for(messages, level, kind)
        if alignment.dynamic_change > self.dynamic_change_warning:
            message += require(messages, "dynamic_suffix")
        return FeedbackItem(
            level=level,
            message=message,
            correction=correction,
            value=round1(value),
            score=self.curve.score(value, thresholds),
            ideal_range=thresholds.ideal,
            acceptable_range=thresholds.acceptable,
            angle_points=(LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE),
        )

    def _heel_rise(self, points) -> bool:
        for side in ("left", "right"):
            heel = points[LM.side(side, "heel")]
            foot = points[LM.side(side, "foot_index")]
            ankle = points[LM.side(side, "ankle")]
            if (foot.y - heel.y) > abs(ankle.y - heel.y) * self.heel_rise_ratio:
                return True
        return False

    def _evaluate(self, pose: Pose3D, state: AnalyzerState) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
        points = self._collect_points(pose)
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}
        symmetry_scores: List[int] = []

        # Knee
        if has_landmarks(points, LEGS):
            left_knee = angle_at(points[LM.LEFT_HIP], points[LM.LEFT_KNEE], points[LM.LEFT_ANKLE])
            right_knee = angle_at(points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE], points[LM.RIGHT_ANKLE])
            raw.update(left_knee_angle=round1(left_knee), right_knee_angle=round1(right_knee))
            feedbacks["knee_angle"] = evaluate_criterion(
                (left_knee + right_knee) / 2, self.thresholds("knee_angle"), self.curve,
                self.messages("knee_angle"), angle_points=(LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE))
            raw["knee_symmetry_score"] = symmetry_score(left_knee, right_knee)
            symmetry_scores.append(raw["knee_symmetry_score"])
        else:
            feedbacks["knee_angle"] = FeedbackItem.unavailable("knee_angle")

        # Hip
        if has_landmarks(points, HIP_ANGLE_POINTS):
            left_hip = angle_at(points[LM.LEFT_SHOULDER], points[LM.LEFT_HIP], points[LM.LEFT_KNEE])
            right_hip = angle_at(points[LM.RIGHT_SHOULDER], points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE])
            raw.update(left_hip_angle=round1(left_hip), right_hip_angle=round1(right_hip))
            feedbacks["hip_angle"] = evaluate_criterion(
                (left_hip + right_hip) / 2, self.thresholds("hip_angle"), self.curve,
                self.messages("hip_angle"), angle_points=(LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_KNEE))
            raw["hip_symmetry_score"] = symmetry_score(left_hip, right_hip)
            symmetry_scores.append(raw["hip_symmetry_score"])
        else:
            feedbacks["hip_angle"] = FeedbackItem.unavailable("hip_angle")

        # Torso
        if has_landmarks(points, HIPS_AND_SHOULDERS):
            hip_center = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
            shoulder_center = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])
            torso = angle_with_vertical(hip_center, shoulder_center)
            raw["torso_angle"] = round1(torso)
            feedbacks["torso_inclination"] = evaluate_criterion(
                torso, self.thresholds("torso_inclination"), self.curve, self.messages("torso_inclination"))
        else:
            feedbacks["torso_inclination"] = FeedbackItem.unavailable("torso_inclination")

        # Knee valgus
        alignment = None
        if has_landmarks(points, LEGS):
            alignment = self.knee_alignment(points, getattr(state, "baseline_knee_deviation", None))
            if alignment is not None:
                raw.update(left_knee_deviation=alignment.left_degrees,
                           right_knee_deviation=alignment.right_degrees,
                           knee_dynamic_valgus_change=alignment.dynamic_change)
                feedbacks["knee_valgus"] = self._knee_valgus_feedback(alignment)
            else:
                hip_width = distance_2d(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
                knee_width = distance_2d(points[LM.LEFT_KNEE], points[LM.RIGHT_KNEE])
                percent = max(0.0, (hip_width - knee_width) / hip_width * 100) if hip_width > 0 else 0.0
                raw["knee_valgus_percent"] = round1(percent)
                feedbacks["knee_valgus"] = evaluate_criterion(
                    percent, self.thresholds("knee_valgus_2d"), self.curve, self.messages("knee_valgus_2d"))
        else:
            feedbacks["knee_valgus"] = FeedbackItem.unavailable("knee_valgus")

        # Ankle
        if has_landmarks(points, ANKLE_ANGLE_POINTS):
            left_ankle = angle_at(points[LM.LEFT_KNEE], points[LM.LEFT_ANKLE], points[LM.LEFT_FOOT_INDEX])
            right_ankle = angle_at(points[LM.RIGHT_KNEE], points[LM.RIGHT_ANKLE], points[LM.RIGHT_FOOT_INDEX])
            raw.update(left_ankle_angle=round1(left_ankle), right_ankle_angle=round1(right_ankle))
            # dorsiflexion: 0 with the shin perpendicular to the foot
            dorsiflexion = 90.0 - (left_ankle + right_ankle) / 2
            raw["ankle_dorsiflexion"] = round1(dorsiflexion)
            ankle_item = evaluate_criterion(
                dorsiflexion, self.thresholds("ankle_angle"), self.curve,
                self.messages("ankle_angle"), angle_points=(LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.LEFT_FOOT_INDEX))
            if has_landmarks(points, HEELS) and self._heel_rise(points):
                message, correction = message_for(self.messages("ankle_angle"), FeedbackLevel.WARNING, "heel_rise")
                ankle_item = replace(ankle_item, level=FeedbackLevel.WARNING, message=message, correction=correction,
                                     score=min(ankle_item.score, int(self.curve.acceptable_top)))
            feedbacks["ankle_angle"] = ankle_item
            raw["ankle_symmetry_score"] = symmetry_score(left_ankle, right_ankle)
            symmetry_scores.append(raw["ankle_symmetry_score"])
        else:
            feedbacks["ankle_angle"] = FeedbackItem.unavailable("ankle_angle")

        # Symmetry
        if symmetry_scores:
            feedbacks["symmetry"] = evaluate_criterion(
                float(np.mean(symmetry_scores)), self.thresholds("symmetry"), self.curve, self.messages("symmetry"))
        else:
            feedbacks["symmetry"] = FeedbackItem.unavailable("symmetry")

        shared_feedbacks, shared_raw, state = evaluate_shared_checks(self, points, state)
        feedbacks.update(shared_feedbacks)
        raw.update(shared_raw)

        return feedbacks, raw, self._track_knee_deviation(state, alignment)

    @staticmethod
    def _track_knee_deviation(state: AnalyzerState, alignment: Optional[KneeAlignment]) -> AnalyzerState:
        if alignment is None or not isinstance(state, SquatState):
            return state
        if state.phase == RepPhase.STANDING:
            baseline = state.baseline_knee_deviation
            if baseline is None:
                baseline = (alignment.left_degrees, alignment.right_degrees)
                logger.debug(f"Standing knee deviation baseline captured: {baseline}")
            return replace(state, baseline_knee_deviation=baseline, peak_knee_deviation=0.0)
        return replace(state, peak_knee_deviation=max(state.peak_knee_deviation, alignment.peak_deviation))
