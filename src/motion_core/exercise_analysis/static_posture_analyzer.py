"""
Single-frame standing posture assessment.

A front view checks left/right balance (shoulder and pelvic tilt, lateral
spine lean, leg alignment, shoulder levelness). A side view checks the
sagittal chain (forward head, neck angle, kyphosis, lordosis, shoulder roll,
scapula position) on whichever side the camera sees more confidently.
There is no rep cycle: the phase stays STATIC and the rep count stays 0.
"""
from dataclasses import replace
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from ..pose_detection.landmarks import Pose3D
from .base_analyzer import (
    AnalysisResult,
    AnalyzerState,
    BaseExerciseAnalyzer,
    FeedbackItem,
    RepPhase,
    evaluate_criterion,
    has_landmarks,
)
from .config_utils import load_static_posture_config, require
from .pose_utils import (
    angle_at,
    angle_with_horizontal,
    angle_with_vertical,
    distance_2d,
    is_valid_landmark,
    midpoint,
    round1,
)

_STATIC_POSTURE_CONFIG = load_static_posture_config()

logger = get_logger("StaticPostureAnalyzer")

SHOULDERS_AND_HIPS = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP)
LEGS = (LM.LEFT_HIP, LM.LEFT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_HIP, LM.RIGHT_KNEE, LM.RIGHT_ANKLE)


class PostureView(str, Enum):
    FRONT = "front"
    SIDE = "side"


def _tilt_degrees(a, b) -> float:
    width = distance_2d(a, b)
    if width == 0:
        return 0.0
    return float(np.degrees(np.arctan(abs(a.y - b.y) / width)))


def _leg_deviation(hip, knee, ankle) -> float:
    length = distance_2d(hip, ankle)
    if length == 0:
        return 0.0
    deviation = abs(knee.x - (hip.x + ankle.x) / 2)
    return float(np.degrees(np.arctan(deviation / length)))


class StaticPostureAnalyzer(BaseExerciseAnalyzer):
    def __init__(self, config=None, view: Optional[PostureView] = None):
        """
        Args:
            config: Threshold table; the bundled static posture config by default
            view: Fixed camera view, or None to detect it on every frame
        """
        super().__init__(config if config is not None else _STATIC_POSTURE_CONFIG)
        self.view = PostureView(view) if view is not None else None
        self.view_criteria = {PostureView(k): list(v) for k, v in require(self.config, "views").items()}
        detection = require(self.config, "view_detection")
        self.confidence_gap = float(require(detection, "confidence_gap"))
        self.width_to_height_ratio = float(require(detection, "width_to_height_ratio"))
        self.min_average_width = float(require(detection, "min_average_width"))

    def get_exercise_name(self) -> str:
        return "static_posture"

    def get_required_landmarks(self) -> List[LM]:
        return list(SHOULDERS_AND_HIPS)

    def create_initial_state(self) -> AnalyzerState:
        return AnalyzerState(phase=RepPhase.STATIC)

    def detect_view(self, pose: Optional[Pose3D]) -> PostureView:
        """
        Guess whether the camera faces the body or sees it from the side.

        A large confidence gap between the two sides, or shoulders that are
        narrow compared to their height difference, means a side view.
        Without valid shoulders and hips the front view is assumed.
        """
        if pose is None:
            return PostureView.FRONT
        landmarks = [pose[i] for i in SHOULDERS_AND_HIPS]
        if not all(is_valid_landmark(lm, self.min_landmark_score) for lm in landmarks):
            return PostureView.FRONT
        left_shoulder, right_shoulder, left_hip, right_hip = landmarks

        left_score = (left_shoulder.confidence or 0.0) + (left_hip.confidence or 0.0)
        right_score = (right_shoulder.confidence or 0.0) + (right_hip.confidence or 0.0)
        if abs(left_score - right_score) > self.confidence_gap:
            return PostureView.SIDE

        shoulder_width = abs(left_shoulder.x - right_shoulder.x)
        hip_width = abs(left_hip.x - right_hip.x)
        average_width = (shoulder_width + hip_width) / 2
        height_diff = abs(left_shoulder.y - right_shoulder.y)
        if shoulder_width > height_diff * self.width_to_height_ratio and average_width > self.min_average_width:
            return PostureView.FRONT
        return PostureView.SIDE

    def _criterion(self, name: str, value: float) -> FeedbackItem:
        return evaluate_criterion(value, self.thresholds(name), self.curve, self.messages(name))

    def _analyze_front(self, points) -> Tuple[Dict[str, FeedbackItem], Dict[str, float]]:
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}
        if has_landmarks(points, SHOULDERS_AND_HIPS):
            ls, rs = points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER]
            lh, rh = points[LM.LEFT_HIP], points[LM.RIGHT_HIP]
            shoulder_center, hip_center = midpoint(ls, rs), midpoint(lh, rh)
            raw["shoulder_tilt"] = round1(_tilt_degrees(ls, rs))
            raw["pelvic_tilt"] = round1(_tilt_degrees(lh, rh))
            raw["spine_alignment"] = round1(abs(float(np.degrees(np.arctan2(
                shoulder_center.x - hip_center.x, hip_center.y - shoulder_center.y)))))
            raw["shoulder_levelness"] = round1(abs(angle_with_horizontal(ls, rs)))
        if has_landmarks(points, LEGS):
            left = _leg_deviation(points[LM.LEFT_HIP], points[LM.LEFT_KNEE], points[LM.LEFT_ANKLE])
            right = _leg_deviation(points[LM.RIGHT_HIP], points[LM.RIGHT_KNEE], points[LM.RIGHT_ANKLE])
            raw["leg_alignment"] = round1((left + right) / 2)

        for name in self.view_criteria[PostureView.FRONT]:
            feedbacks[name] = self._criterion(name, raw[name]) if name in raw else FeedbackItem.unavailable(name)
        return feedbacks, raw

    @staticmethod
    def _side_confidence(pose: Pose3D, side: str) -> float:
        total = 0.0
        for part in ("ear", "shoulder"):
            landmark = pose[LM.side(side, part)]
            if landmark is not None:
                total += landmark.confidence or 0.0
        return total

    def _side_to_use(self, pose: Pose3D) -> str:
        if self._side_confidence(pose, "left") > self._side_confidence(pose, "right"):
            return "left"
        return "right"

    def _analyze_side(self, pose: Pose3D, points) -> Tuple[Dict[str, FeedbackItem], Dict[str, float]]:
        side = self._side_to_use(pose)
        ear_i, shoulder_i, hip_i, knee_i = (LM.side(side, part) for part in ("ear", "shoulder", "hip", "knee"))
        raw: Dict[str, float] = {}

        if has_landmarks(points, (shoulder_i, hip_i)):
            shoulder, hip = points[shoulder_i], points[hip_i]
            torso = distance_2d(shoulder, hip)
            raw["kyphosis"] = round1(angle_with_vertical(hip, shoulder))
            raw["scapula_position"] = round1((shoulder.z - hip.z) / torso * 100 if torso > 0 else 0.0)

            if ear_i in points:
                ear = points[ear_i]
                raw["forward_head"] = round1(max(0.0, shoulder.x - ear.x) / torso * 100 if torso > 0 else 0.0)
                raw["neck_angle"] = round1(abs(float(np.degrees(np.arctan2(ear.x - shoulder.x, shoulder.y - ear.y)))))
                raw["shoulder_forward_roll"] = round1(angle_at(ear, shoulder, hip))

            if knee_i in points:
                knee = points[knee_i]
                hip_knee = np.degrees(np.arctan2(knee.x - hip.x, knee.y - hip.y))
                shoulder_hip = np.degrees(np.arctan2(hip.x - shoulder.x, hip.y - shoulder.y))
                raw["lordosis"] = round1(abs(float(hip_knee - shoulder_hip)))

        feedbacks = {name: self._criterion(name, raw[name]) if name in raw else FeedbackItem.unavailable(name)
                     for name in self.view_criteria[PostureView.SIDE]}
        return feedbacks, raw

    def step(self, state: AnalyzerState, pose: Optional[Pose3D],
             timestamp: Optional[float] = None) -> Tuple[AnalysisResult, AnalyzerState]:
        view = self.view if self.view is not None else self.detect_view(pose)
        if pose is None:
            feedbacks = {name: FeedbackItem.unavailable(name) for name in self.view_criteria[view]}
            raw: Dict[str, float] = {}
        else:
            points = self._collect_points(pose)
            if view == PostureView.FRONT:
                feedbacks, raw = self._analyze_front(points)
            else:
                feedbacks, raw = self._analyze_side(pose, points)

        new_state = replace(state, phase=RepPhase.STATIC, frames_processed=state.frames_processed + 1)
        result = self._build_result(feedbacks, raw, new_state, False, None, view=view.value)
        logger.debug(f"Posture ({view.value}) score {result.score}")
        return result, new_state
