"""
Timed plank hold analysis.

Every frame is scored on its own: body line, hip height, shoulders stacked
over the hands and head in line with the body. The hold clock runs while the
frame score stays at or above ``hold.min_valid_score`` and stops on the first
frame that falls below it. Timestamps are supplied by the caller, in seconds.
"""
from dataclasses import dataclass, replace
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
    aggregate_score,
    evaluate_criterion,
    has_landmarks,
)
from .config_utils import load_plank_config, require
from .pose_utils import angle_at, angle_with_vertical, distance_2d, midpoint, round1

_PLANK_CONFIG = load_plank_config()

logger = get_logger("PlankAnalyzer")

BODY_LINE = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_HIP, LM.RIGHT_HIP, LM.LEFT_ANKLE, LM.RIGHT_ANKLE)
WRISTS = (LM.LEFT_WRIST, LM.RIGHT_WRIST)
EARS = (LM.LEFT_EAR, LM.RIGHT_EAR)


@dataclass(frozen=True)
class PlankState(AnalyzerState):
    is_holding: bool = False
    hold_start_time: Optional[float] = None
    current_hold_time: float = 0.0
    total_hold_time: float = 0.0
    hold_frames: int = 0
    average_score: float = 0.0

    @property
    def elapsed_hold_time(self) -> float:
        """Finished holds plus the one in progress."""
        return self.total_hold_time + self.current_hold_time


class PlankAnalyzer(BaseExerciseAnalyzer):
    """Plank form and hold-time analysis; the phase stays STATIC and no reps are counted."""

    def __init__(self, config=None):
        super().__init__(config if config is not None else _PLANK_CONFIG)
        hold = require(self.config, "hold")
        self.min_valid_score = float(require(hold, "min_valid_score"))
        self.holding_label = require(hold, "holding_label")
        self.resting_label = require(hold, "resting_label")

    def get_exercise_name(self) -> str:
        return "plank"

    def get_required_landmarks(self) -> List[LM]:
        return list(BODY_LINE)

    def create_initial_state(self) -> PlankState:
        return PlankState(phase=RepPhase.STATIC)

    def _evaluate(self, points) -> Tuple[Dict[str, FeedbackItem], Dict[str, float]]:
        feedbacks: Dict[str, FeedbackItem] = {}
        raw: Dict[str, float] = {}

        if not has_landmarks(points, self.get_required_landmarks()):
            logger.debug("Body line not visible; plank frame not scored")
            return {name: FeedbackItem.unavailable(name) for name in self.criteria()}, raw

        shoulder_c = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])
        hip_c = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
        ankle_c = midpoint(points[LM.LEFT_ANKLE], points[LM.RIGHT_ANKLE])

        # Body line: 0 when shoulder, hip and ankle are collinear
        bend = abs(180.0 - angle_at(shoulder_c, hip_c, ankle_c))
        raw["body_line_deviation"] = round1(bend)
        feedbacks["body_alignment"] = evaluate_criterion(
            bend, self.thresholds("body_alignment"), self.curve, self.messages("body_alignment"),
            angle_points=(LM.LEFT_SHOULDER, LM.LEFT_HIP, LM.LEFT_ANKLE))

        # Hip height: negative when the hips sag below the shoulder-ankle line, positive when piked
        half_length = distance_2d(shoulder_c, ankle_c) / 2
        if half_length > 0:
            rise = (shoulder_c.y + ankle_c.y) / 2 - hip_c.y
            hip_angle = float(np.degrees(np.arctan(rise / half_length)))
            raw["hip_position"] = round1(hip_angle)
            feedbacks["hip_position"] = evaluate_criterion(
                hip_angle, self.thresholds("hip_position"), self.curve, self.messages("hip_position"))
        else:
            feedbacks["hip_position"] = FeedbackItem.unavailable("hip_position")

        # Shoulders over hands, as a percentage of torso length
        torso_length = distance_2d(shoulder_c, hip_c)
        if has_landmarks(points, WRISTS) and torso_length > 0:
            wrist_c = midpoint(points[LM.LEFT_WRIST], points[LM.RIGHT_WRIST])
            offset = abs(shoulder_c.x - wrist_c.x) / torso_length * 100
            raw["shoulder_offset"] = round1(offset)
            feedbacks["shoulder_alignment"] = evaluate_criterion(
                offset, self.thresholds("shoulder_alignment"), self.curve, self.messages("shoulder_alignment"))
        else:
            feedbacks["shoulder_alignment"] = FeedbackItem.unavailable("shoulder_alignment")

        # Head against the body line
        ears = [points[index] for index in EARS if index in points]
        if ears:
            ear = midpoint(*ears) if len(ears) == 2 else ears[0]
            head = abs(angle_with_vertical(shoulder_c, ear) - angle_with_vertical(hip_c, shoulder_c))
            raw["neck_angle"] = round1(head)
            feedbacks["neck_alignment"] = evaluate_criterion(
                head, self.thresholds("neck_alignment"), self.curve, self.messages("neck_alignment"))
        else:
            feedbacks["neck_alignment"] = FeedbackItem.unavailable("neck_alignment")

        return feedbacks, raw

    def _update_hold(self, state: PlankState, score: int, timestamp: Optional[float]) -> PlankState:
        valid = score >= self.min_valid_score
        if valid and not state.is_holding:
            logger.info("Plank hold started")
            return replace(state, is_holding=True, hold_start_time=timestamp, current_hold_time=0.0,
                           hold_frames=1, average_score=float(score))
        if valid:
            held = 0.0
            if timestamp is not None and state.hold_start_time is not None:
                held = timestamp - state.hold_start_time
            frames = state.hold_frames + 1
            return replace(state, current_hold_time=held, hold_frames=frames,
                           average_score=(state.average_score * state.hold_frames + score) / frames)
        if state.is_holding:
            logger.info(f"Plank hold ended after {state.current_hold_time:.1f}s")
            return replace(state, is_holding=False, hold_start_time=None, current_hold_time=0.0,
                           total_hold_time=state.total_hold_time + state.current_hold_time)
        return state

    def step(self, state: AnalyzerState, pose: Optional[Pose3D],
             timestamp: Optional[float] = None) -> Tuple[AnalysisResult, AnalyzerState]:
        points = self._collect_points(pose) if pose is not None else {}
        feedbacks, raw = self._evaluate(points)
        score, _ = aggregate_score(feedbacks, self.weights)

        new_state = self._update_hold(state, score, timestamp)
        new_state = replace(new_state, phase=RepPhase.STATIC, frames_processed=state.frames_processed + 1)
        raw.update(hold_time=round1(new_state.current_hold_time),
                   total_hold_time=round1(new_state.elapsed_hold_time))

        result = self._build_result(feedbacks, raw, new_state, False, None)
        label = self.holding_label if new_state.is_holding else self.resting_label
        return replace(result, phase_label=label), new_state
