"""
Left/right comparison of joint angles and its evolution over reps.
"""
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark, Pose3D
from .base_analyzer import FeedbackLevel
from .config_utils import load_config, require
from .pose_utils import angle_at, get_valid_points, round1, round_half_up, symmetry_score

_BILATERAL_CONFIG = load_config("bilateral_config")

logger = get_logger("BilateralTracker")

BALANCED = "balanced"


class JointSet(str, Enum):
    LOWER_BODY = "lower_body"
    UPPER_BODY = "upper_body"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass(frozen=True)
class BilateralAngleData:
    joint: str
    left_angle: float
    right_angle: float
    difference: float
    symmetry_score: int
    level: FeedbackLevel
    dominant_side: str  # "left", "right" or "balanced"; the side with the smaller angle


@dataclass(frozen=True)
class RepHistoryEntry:
    rep_number: int
    timestamp: float
    angles: Mapping[str, Optional[BilateralAngleData]]


@dataclass(frozen=True)
class ImbalanceTrend:
    joint: str
    trend: Trend
    average_difference: float
    consistent_limitation_side: Optional[str]
    improvement_percent: int


class BilateralSymmetryTracker:
    """
    Compares left and right joint angles frame by frame and keeps a bounded
    per-rep history from which imbalance trends are computed.
    """

    def __init__(self, joint_set: JointSet = JointSet.LOWER_BODY, config: Optional[Mapping] = None):
        self.config = config if config is not None else _BILATERAL_CONFIG
        self.joint_set = JointSet(joint_set)
        self.joints: Dict[str, List[str]] = dict(require(self.config, "joint_sets", self.joint_set.value))
        self.min_landmark_score = float(self.config.get("min_landmark_score", 0.5))
        self.good_max = float(require(self.config, "severity", "good"))
        self.warning_max = float(require(self.config, "severity", "warning"))
        self.trend_window = int(require(self.config, "trend_window"))
        self.trend_threshold = float(require(self.config, "trend_threshold"))
        self.consistent_side_share = float(require(self.config, "consistent_side_share"))
        self._history: deque = deque(maxlen=int(require(self.config, "history_size")))

    def _level(self, difference: float) -> FeedbackLevel:
        if difference <= self.good_max:
            return FeedbackLevel.GOOD
        if difference <= self.warning_max:
            return FeedbackLevel.WARNING
        return FeedbackLevel.ERROR

    def _dominant_side(self, left: float, right: float, difference: float) -> str:
        if difference <= self.good_max:
            return BALANCED
        return "left" if left < right else "right"

    def _side_angle(self, pose: Optional[Pose3D], side: str, parts: List[str]) -> Optional[float]:
        indices = [BlazePoseLandmark.side(side, part) for part in parts]
        points = get_valid_points(pose, indices, self.min_landmark_score)
        if points is None:
            return None
        return round1(angle_at(*points))

    def compare(self, joint: str, left_angle: float, right_angle: float) -> BilateralAngleData:
        difference = round1(abs(left_angle - right_angle))
        return BilateralAngleData(
            joint=joint,
            left_angle=left_angle,
            right_angle=right_angle,
            difference=difference,
            symmetry_score=symmetry_score(left_angle, right_angle),
            level=self._level(difference),
            dominant_side=self._dominant_side(left_angle, right_angle, difference),
        )

    def analyze(self, pose: Optional[Pose3D]) -> Dict[str, Optional[BilateralAngleData]]:
        """
        Bilateral data for every joint of the set.

        A joint is None when any of its six landmarks is missing or below the
        confidence threshold.
        """
        data: Dict[str, Optional[BilateralAngleData]] = {}
        for joint, parts in self.joints.items():
            left = self._side_angle(pose, "left", parts)
            right = self._side_angle(pose, "right", parts)
            data[joint] = None if left is None or right is None else self.compare(joint, left, right)
        return data

    @staticmethod
    def overall_symmetry_score(data: Mapping[str, Optional[BilateralAngleData]]) -> int:
        scores = [d.symmetry_score for d in data.values() if d is not None]
        if not scores:
            return 0
        return round_half_up(float(np.mean(scores)))

    def add_rep(self, rep_number: int, timestamp: float, angles: Mapping[str, Optional[BilateralAngleData]]) -> None:
        """Append one rep; the oldest entry is dropped once the history is full."""
        self._history.append(RepHistoryEntry(rep_number, timestamp, dict(angles)))
        logger.debug(f"Bilateral history: rep {rep_number} added ({len(self._history)} stored)")

    def calculate_trends(self) -> List[ImbalanceTrend]:
        """
        Imbalance trend per joint over the most recent reps.

        Returns an empty list until the trend window is filled. Joints without
        data in one of the window halves are skipped.
        """
        if len(self._history) < self.trend_window:
            return []
        recent = list(self._history)[-self.trend_window:]
        trends = []
        for joint in self.joints:
            samples = [entry.angles.get(joint) for entry in recent]
            samples = [s for s in samples if s is not None]
            split = len(samples) // 2
            first, second = samples[:split], samples[split:]
            if not first or not second:
                continue

            first_avg = float(np.mean([s.difference for s in first]))
            second_avg = float(np.mean([s.difference for s in second]))
            if second_avg < first_avg - self.trend_threshold:
                trend = Trend.IMPROVING
            elif second_avg > first_avg + self.trend_threshold:
                trend = Trend.DECLINING
            else:
                trend = Trend.STABLE

            counts = Counter(s.dominant_side for s in samples)
            consistent_side = None
            for side in ("left", "right"):
                if counts[side] > len(samples) * self.consistent_side_share:
                    consistent_side = side

            improvement = round_half_up((first_avg - second_avg) / first_avg * 100) if first_avg > 0 else 0
            trends.append(ImbalanceTrend(
                joint=joint,
                trend=trend,
                average_difference=round1(float(np.mean([s.difference for s in samples]))),
                consistent_limitation_side=consistent_side,
                improvement_percent=improvement,
            ))
        return trends

    @property
    def history(self) -> List[RepHistoryEntry]:
        return list(self._history)

    def reset(self) -> None:
        self._history.clear()
