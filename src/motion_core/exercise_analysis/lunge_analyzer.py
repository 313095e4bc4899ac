from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

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
from .config_utils import load_lunge_config, require
from .pose_utils import angle_at, angle_with_vertical, distance_2d, midpoint, round1

_LUNGE_CONFIG = load_lunge_config()

logger = get_logger("LungeAnalyzer")

LEGS = (LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_HIP, LM.RIGHT_KNEE, LM.RIGHT_ANKLE)
HIPS_AND_SHOULDERS = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP)

# hip flexor length only shows once the back thigh is extended
HIP_FLEXOR_PHASES = (RepPhase.BOTTOM, RepPhase.ASCENDING)


@dataclass(frozen=True)
class LungeState(PelvisState):
    front_leg: Optional[str] = None


def _other(side: str) -> str:
    return "right" if side == "left" else "left"


def _leg(points, side: str):
    return tuple(points[LM.side(side, part)] for part in ("hip", "knee", "ankle"))


class LungeAnalyzer(RepExerciseAnalyzer):
    """
    Lunge form analysis driven by the front knee angle.

    The front leg is re-detected every frame. Criteria cover both knees, the
    front hip, torso inclination, knee travel over the toes and, at the bottom
    of the rep, hip flexor length on the trailing leg, plus the shared neck,
    pelvic tilt and torso rotation checks.
    """

    STATE_CLASS = LungeState

    def __init__(self, config=None):
        super().__init__(config if config is not None else _LUNGE_CONFIG)
        stance = require(self.config, "front_leg")
        self.stance_gap = float(require(stance, "stance_gap"))
        self.depth_gap = float(require(stance, "depth_gap"))
        self.foot_height_gap = float(require(stance, "foot_height_gap"))

    def get_exercise_name(self) -> str:
        return "lunge"

    def get_required_landmarks(self) -> List[LM]:
        return list(LEGS)

    def front_leg(self, points, facing: float = 1.0) -> str:
        """
        Which leg is in front: the ankle further along the facing direction
        (side view), else the ankle nearer the camera, else the lower foot
        (front view). Falls back to the right leg when the stance is square.
        """
        left, right = points[LM.LEFT_ANKLE], points[LM.RIGHT_ANKLE]
        gap = (left.x - right.x) * facing
        if abs(gap) > self.stance_gap:
            return "left" if gap > 0 else "right"
        depth = left.z - right.z
        if abs(depth) > self.depth_gap:
            return "left" if depth < 0 else "right"
        if has_landmarks(points, (LM.LEFT_FOOT_INDEX, LM.RIGHT_FOOT_INDEX)):
            drop = points[LM.LEFT_FOOT_INDEX].y - points[LM.RIGHT_FOOT_INDEX].y
            if abs(drop) > self.foot_height_gap:
                return "left" if drop > 0 else "right"
        return "right"

    def _primary_angle(self, pose: Pose3D) -> Optional[float]:
        points = self._collect_points(pose)
        if not has_landmarks(points, self.get_required_landmarks()):
            return None
        front = self.front_leg(points, facing_direction(points))
        return angle_at(*_leg(points, front))

    def _evaluate(self, pose: Pose3D, state: AnalyzerState) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
        points = self._collect_points(pose)
        facing = facing_direction(points)
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}

        if not has_landmarks(points, LEGS):
            for name in ("front_knee_angle", "back_knee_angle", "hip_angle", "knee_over_toe", "hip_flexor_tightness"):
                feedbacks[name] = FeedbackItem.unavailable(name)
            front = None
        else:
            front = self.front_leg(points, facing)
            back = _other(front)
            f_hip, f_knee, f_ankle = _leg(points, front)
            b_hip, b_knee, b_ankle = _leg(points, back)

            front_knee = angle_at(f_hip, f_knee, f_ankle)
            back_knee = angle_at(b_hip, b_knee, b_ankle)
            raw.update(front_knee_angle=round1(front_knee), back_knee_angle=round1(back_knee))
            raw[f"{front}_knee_angle"] = round1(front_knee)
            raw[f"{back}_knee_angle"] = round1(back_knee)
            feedbacks["front_knee_angle"] = evaluate_criterion(
                front_knee, self.thresholds("front_knee_angle"), self.curve, self.messages("front_knee_angle"),
                angle_points=(LM.side(front, "hip"), LM.side(front, "knee"), LM.side(front, "ankle")))
            feedbacks["back_knee_angle"] = evaluate_criterion(
                back_knee, self.thresholds("back_knee_angle"), self.curve, self.messages("back_knee_angle"),
                angle_points=(LM.side(back, "hip"), LM.side(back, "knee"), LM.side(back, "ankle")))

            front_shoulder = LM.side(front, "shoulder")
            if front_shoulder in points:
                front_hip_angle = angle_at(points[front_shoulder], f_hip, f_knee)
                raw[f"{front}_hip_angle"] = round1(front_hip_angle)
                feedbacks["hip_angle"] = evaluate_criterion(
                    front_hip_angle, self.thresholds("hip_angle"), self.curve, self.messages("hip_angle"),
                    angle_points=(front_shoulder, LM.side(front, "hip"), LM.side(front, "knee")))
            else:
                feedbacks["hip_angle"] = FeedbackItem.unavailable("hip_angle")

            front_toe = LM.side(front, "foot_index")
            leg_length = distance_2d(f_hip, f_ankle)
            if front_toe in points and leg_length > 0:
                travel = (f_knee.x - points[front_toe].x) * facing / leg_length * 100
                raw["knee_over_toe"] = round1(travel)
                feedbacks["knee_over_toe"] = evaluate_criterion(
                    travel, self.thresholds("knee_over_toe"), self.curve, self.messages("knee_over_toe"))
            else:
                feedbacks["knee_over_toe"] = FeedbackItem.unavailable("knee_over_toe")

            back_shoulder = LM.side(back, "shoulder")
            if back_shoulder in points:
                extension = angle_at(points[back_shoulder], b_hip, b_knee)
                raw[f"{back}_hip_angle"] = round1(extension)
                raw["back_hip_extension"] = round1(extension)
                if state.phase in HIP_FLEXOR_PHASES:
                    feedbacks["hip_flexor_tightness"] = evaluate_criterion(
                        extension, self.thresholds("hip_flexor_tightness"), self.curve,
                        self.messages("hip_flexor_tightness"),
                        angle_points=(back_shoulder, LM.side(back, "hip"), LM.side(back, "knee")))
                else:
                    feedbacks["hip_flexor_tightness"] = FeedbackItem.unavailable("hip_flexor_tightness")
            else:
                feedbacks["hip_flexor_tightness"] = FeedbackItem.unavailable("hip_flexor_tightness")

        if has_landmarks(points, HIPS_AND_SHOULDERS):
            hip_center = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
            shoulder_center = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])
            torso = angle_with_vertical(hip_center, shoulder_center)
            raw["torso_angle"] = round1(torso)
            feedbacks["torso_inclination"] = evaluate_criterion(
                torso, self.thresholds("torso_inclination"), self.curve, self.messages("torso_inclination"))
        else:
            feedbacks["torso_inclination"] = FeedbackItem.unavailable("torso_inclination")

        shared_feedbacks, shared_raw, state = evaluate_shared_checks(self, points, state, facing)
        feedbacks.update(shared_feedbacks)
        raw.update(shared_raw)

        if front is not None and isinstance(state, LungeState) and state.front_leg != front:
            logger.debug(f"Front leg: {front}")
            state = replace(state, front_leg=front)
        return feedbacks, raw, state
