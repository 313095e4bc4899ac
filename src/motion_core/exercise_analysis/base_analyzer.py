from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from ..exceptions import ConfigurationError
from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark, Pose3D
from .config_utils import require
from .pose_utils import Point3D, is_valid_landmark, round1, round_half_up, to_point

logger = get_logger("ExerciseAnalyzer")


class FeedbackLevel(str, Enum):
    """Severity of a single criterion; ordered good < warning < error."""
    GOOD = "good"
    WARNING = "warning"
    ERROR = "error"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    def __lt__(self, other):
        if not isinstance(other, FeedbackLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other):
        if not isinstance(other, FeedbackLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other):
        if not isinstance(other, FeedbackLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other):
        if not isinstance(other, FeedbackLevel):
            return NotImplemented
        return self.severity >= other.severity


_SEVERITY = {FeedbackLevel.GOOD: 0, FeedbackLevel.WARNING: 1, FeedbackLevel.ERROR: 2}


def worse_level(a: Optional[FeedbackLevel], b: Optional[FeedbackLevel]) -> Optional[FeedbackLevel]:
    """Worse wins; an unavailable level (None) loses to any real one."""
    if a is None:
        return b
    if b is None:
        return a
    return a if a >= b else b


class CorrectionDirection(str, Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"
    FORWARD = "forward"
    BACKWARD = "backward"
    INWARD = "inward"
    OUTWARD = "outward"
    STRAIGHTEN = "straighten"
    LOWER = "lower"
    RAISE = "raise"


class AnalyzerKind(str, Enum):
    SQUAT = "squat"
    PUSHUP = "pushup"
    LUNGE = "lunge"
    DEADLIFT = "deadlift"
    PLANK = "plank"
    STATIC_POSTURE = "static_posture"


class RepPhase(str, Enum):
    STANDING = "standing"
    DESCENDING = "descending"
    BOTTOM = "bottom"
    ASCENDING = "ascending"
    STATIC = "static"


@dataclass(frozen=True)
class ValueRange:
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ValueRange":
        return cls(float(require(config, "min")), float(require(config, "max")))


@dataclass(frozen=True)
class CriterionThresholds:
    """Ideal and acceptable ranges of one criterion; anything outside acceptable is an error."""
    ideal: ValueRange
    acceptable: ValueRange

    def classify(self, value: float) -> FeedbackLevel:
        if self.ideal.contains(value):
            return FeedbackLevel.GOOD
        if self.acceptable.contains(value):
            return FeedbackLevel.WARNING
        return FeedbackLevel.ERROR

    @classmethod
    def from_config(cls, config: Mapping[str, Any], name: str) -> "CriterionThresholds":
        entry = require(config, "thresholds", name)
        return cls(ValueRange.from_config(require(entry, "ideal")),
                   ValueRange.from_config(require(entry, "acceptable")))


@dataclass(frozen=True)
class ItemScoreCurve:
    """Per-family mapping of a criterion value to a 0-100 item score."""
    acceptable_top: float = 90.0
    acceptable_drop: float = 30.0
    outside_start: float = 60.0
    outside_slope: float = 2.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ItemScoreCurve":
        curve = require(config, "item_score")
        return cls(float(require(curve, "acceptable_top")), float(require(curve, "acceptable_drop")),
                   float(require(curve, "outside_start")), float(require(curve, "outside_slope")))

    def score(self, value: float, thresholds: CriterionThresholds) -> int:
        ideal, acceptable = thresholds.ideal, thresholds.acceptable
        if ideal.contains(value):
            return 100
        if acceptable.contains(value):
            if value < ideal.min:
                distance, max_distance = ideal.min - value, ideal.min - acceptable.min
            else:
                distance, max_distance = value - ideal.max, acceptable.max - ideal.max
            ratio = distance / max_distance if max_distance > 0 else 0.0
            return round_half_up(self.acceptable_top - ratio * self.acceptable_drop)
        if value < acceptable.min:
            distance = acceptable.min - value
        else:
            distance = value - acceptable.max
        return round_half_up(max(0.0, self.outside_start - distance * self.outside_slope))


@dataclass(frozen=True)
class FeedbackItem:
    """Outcome of one criterion for one frame. ``level is None`` means unavailable."""
    level: Optional[FeedbackLevel]
    message: str
    correction: CorrectionDirection = CorrectionDirection.NONE
    value: Optional[float] = None
    score: Optional[int] = None
    ideal_range: Optional[ValueRange] = None
    acceptable_range: Optional[ValueRange] = None
    angle_points: Optional[Tuple[BlazePoseLandmark, BlazePoseLandmark, BlazePoseLandmark]] = None

    @property
    def available(self) -> bool:
        return self.level is not None

    @classmethod
    def unavailable(cls, criterion: str) -> "FeedbackItem":
        return cls(level=None, message=FeedbackGenerator.unavailable(criterion))


# --- Feedback Templates ---
class FeedbackGenerator:
    @staticmethod
    def unavailable(criterion):
        return f"{criterion.replace('_', ' ').capitalize()} unavailable: landmarks not visible"


def message_for(messages: Mapping[str, Any], level: FeedbackLevel,
                side: Optional[str] = None) -> Tuple[str, CorrectionDirection]:
    """
    Look up ``(message, correction)`` for a level and, for non-good levels, a side.

    Config entries are either a plain string (no correction) or
    ``{"message": str, "correction": str}``; warning/error entries are keyed
    by side (``below``/``above``, or any family-specific key).
    """
    entry = require(messages, level.value)
    if level != FeedbackLevel.GOOD and side is not None:
        entry = require(entry, side)
    if isinstance(entry, str):
        return entry, CorrectionDirection.NONE
    return require(entry, "message"), CorrectionDirection(entry.get("correction", "none"))


def evaluate_criterion(value: float, thresholds: CriterionThresholds, curve: ItemScoreCurve,
                       messages: Mapping[str, Any], angle_points=None,
                       score: Optional[int] = None) -> FeedbackItem:
    """
    Classify a value against its ranges and pick the message for its level and side.

    Args:
        value: Raw criterion value
        thresholds: Ideal/acceptable ranges
        curve: Item score curve of the exercise family
        messages: Message table of the criterion (see message_for)
        angle_points: Optional landmark triple for arc drawing
        score: Explicit item score, overriding the curve

    Returns:
        FeedbackItem with value rounded to 0.1
    """
    level = thresholds.classify(value)
    side = "below" if value < thresholds.ideal.min else "above"
    message, correction = message_for(messages, level, side)
    return FeedbackItem(
        level=level,
        message=message,
        correction=correction,
        value=round1(value),
        score=score if score is not None else curve.score(value, thresholds),
        ideal_range=thresholds.ideal,
        acceptable_range=thresholds.acceptable,
        angle_points=angle_points,
    )


def has_landmarks(points: Mapping[BlazePoseLandmark, Any], indices) -> bool:
    return all(index in points for index in indices)


LEVEL_SCORE_BANDS = {
    FeedbackLevel.GOOD: (80, 100),
    FeedbackLevel.WARNING: (50, 79),
    FeedbackLevel.ERROR: (0, 49),
}


def aggregate_score(feedbacks: Mapping[str, FeedbackItem],
                    weights: Mapping[str, float]) -> Tuple[int, Optional[FeedbackLevel]]:
    """
    Combine item scores into one 0-100 score and the overall (worst) level.

    The weighted mean runs over available criteria only and is then clamped
    into the band of the worst level: good-only frames score at least 80,
    warning-only frames 50-79 and any error caps the score at 49.
    Returns (0, None) when no criterion is available.
    """
    total = 0.0
    total_weight = 0.0
    worst: Optional[FeedbackLevel] = None
    for name, item in feedbacks.items():
        if not item.available or item.score is None:
            continue
        weight = float(weights.get(name, 0.0))
        total += item.score * weight
        total_weight += weight
        worst = worse_level(worst, item.level)
    if worst is None:
        return 0, None
    raw = total / total_weight if total_weight > 0 else float(LEVEL_SCORE_BANDS[worst][1])
    low, high = LEVEL_SCORE_BANDS[worst]
    return int(np.clip(round_half_up(raw), low, high)), worst


# --- State ---
@dataclass(frozen=True)
class AnalyzerState:
    """Caller-owned state threaded from one frame to the next."""
    phase: RepPhase = RepPhase.STANDING
    rep_count: int = 0
    last_angle: Optional[float] = None
    min_angle_in_rep: Optional[float] = None
    standing_angle: Optional[float] = None
    bottom_reached: bool = False
    frames_processed: int = 0


@dataclass(frozen=True)
class AnalysisResult:
    score: int
    level: Optional[FeedbackLevel]
    phase: RepPhase
    phase_label: str
    feedbacks: Dict[str, FeedbackItem]
    raw_angles: Dict[str, float]
    rep_completed: bool
    rep_count: int
    primary_angle: Optional[float]
    new_state: AnalyzerState
    view: Optional[str] = None

    @property
    def available_feedbacks(self) -> Dict[str, FeedbackItem]:
        return {k: v for k, v in self.feedbacks.items() if v.available}


@dataclass(frozen=True)
class PhaseThresholds:
    standing: float
    bottom: float
    hysteresis: float
    standing_tolerance: float

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PhaseThresholds":
        t = require(config, "phase_thresholds")
        return cls(
            standing=float(require(t, "standing")),
            bottom=float(require(t, "bottom")),
            hysteresis=float(require(t, "hysteresis")),
            standing_tolerance=float(require(t, "standing_tolerance")),
        )


class RepPhaseMachine:
    """
    standing -> descending -> bottom -> ascending -> standing, driven by one angle.

    Every transition needs the angle to clear a hysteresis margin so that
    landmark jitter around a threshold cannot flip the phase back and forth.
    A rep is counted once, on ascending -> standing, and only when the depth
    threshold was reached during the cycle.
    """

    def __init__(self, thresholds: PhaseThresholds, name: str = "rep"):
        self.thresholds = thresholds
        self.name = name

    def standing_target(self, standing_angle: Optional[float]) -> float:
        t = self.thresholds
        if standing_angle is None:
            return t.standing
        return max(t.standing, standing_angle - t.standing_tolerance)

    def advance(self, state: AnalyzerState, angle: float) -> Tuple[AnalyzerState, bool]:
        """Return the next state and whether this frame completed a rep."""
        t = self.thresholds
        phase = state.phase
        rep_count = state.rep_count
        standing_angle = state.standing_angle
        bottom_reached = state.bottom_reached
        min_angle = state.min_angle_in_rep
        rep_completed = False

        if phase == RepPhase.STANDING:
            if angle >= t.standing:
                standing_angle = angle if standing_angle is None else max(standing_angle, angle)
            if angle < t.standing - t.hysteresis:
                phase = RepPhase.DESCENDING
                min_angle = angle
                bottom_reached = angle <= t.bottom
        else:
            min_angle = angle if min_angle is None else min(min_angle, angle)
            bottom_reached = bottom_reached or min_angle <= t.bottom
            rising = angle > min_angle + t.hysteresis
            if phase == RepPhase.DESCENDING:
                if angle <= t.bottom or rising:
                    phase = RepPhase.BOTTOM
            elif phase == RepPhase.BOTTOM:
                if rising:
                    phase = RepPhase.ASCENDING
            elif phase == RepPhase.ASCENDING:
                if angle >= self.standing_target(standing_angle):
                    phase = RepPhase.STANDING
                    rep_completed = bottom_reached
                    if rep_completed:
                        rep_count += 1
                    standing_angle = angle if standing_angle is None else max(standing_angle, angle)
                    min_angle = None
                    bottom_reached = False
                elif angle <= t.bottom:
                    phase = RepPhase.BOTTOM

        if phase != state.phase:
            logger.debug(f"[{self.name}] phase {state.phase.value} -> {phase.value} at {angle:.1f}")
        if rep_completed:
            logger.debug(f"[{self.name}] rep {rep_count} completed")

        new_state = replace(
            state,
            phase=phase,
            rep_count=rep_count,
            last_angle=angle,
            min_angle_in_rep=min_angle,
            standing_angle=standing_angle,
            bottom_reached=bottom_reached,
            frames_processed=state.frames_processed + 1,
        )
        return new_state, rep_completed


class BaseExerciseAnalyzer(ABC):
    """Common interface of every exercise analyzer: create a state, then step it frame by frame."""

    PHASE_LABELS: Dict[RepPhase, str] = {phase: phase.value for phase in RepPhase}

    def __init__(self, config: Mapping[str, Any]):
        """
        Initialize the analyzer from its threshold table.

        Args:
            config: Parsed family config (thresholds, weights, messages, scoring curve)
        """
        self.config = config
        self.min_landmark_score = float(config.get("min_landmark_score", 0.5))
        self.weights: Dict[str, float] = {k: float(v) for k, v in require(config, "weights").items()}
        self.curve = ItemScoreCurve.from_config(config)
        self._thresholds: Dict[str, CriterionThresholds] = {
            name: CriterionThresholds.from_config(config, name)
            for name in require(config, "thresholds")
        }

    def thresholds(self, criterion: str) -> CriterionThresholds:
        try:
            return self._thresholds[criterion]
        except KeyError:
            logger.error(f"No thresholds configured for {self.get_exercise_name()}.{criterion}")
            raise ConfigurationError(f"No thresholds configured for {self.get_exercise_name()}.{criterion}") from None

    def messages(self, criterion: str) -> Mapping[str, Any]:
        return require(self.config, "messages", criterion)

    def phase_label(self, phase: RepPhase) -> str:
        return self.PHASE_LABELS.get(phase, phase.value)

    def criteria(self) -> List[str]:
        return list(self.weights)

    def _collect_points(self, pose: Pose3D) -> Dict[BlazePoseLandmark, Point3D]:
        """Every landmark of the frame that passes the confidence gate."""
        return {index: to_point(pose[index]) for index in BlazePoseLandmark
                if is_valid_landmark(pose[index], self.min_landmark_score)}

    @abstractmethod
    def get_exercise_name(self) -> str:
        """
        Get the name of the exercise being analyzed.

        Returns:
            Exercise name
        """
        pass

    @abstractmethod
    def get_required_landmarks(self) -> List[BlazePoseLandmark]:
        """
        Get the landmarks needed for the primary tracked angle.

        Returns:
            List of required landmarks
        """
        pass

    @abstractmethod
    def create_initial_state(self) -> AnalyzerState:
        pass

    @abstractmethod
    def step(self, state: AnalyzerState, pose: Optional[Pose3D],
             timestamp: Optional[float] = None) -> Tuple[AnalysisResult, AnalyzerState]:
        """
        Analyze one frame.

        Args:
            state: State returned by the previous call (or create_initial_state())
            pose: The frame's landmarks; None when the estimator found no body
            timestamp: Caller-supplied capture time in seconds; only timed holds use it

        Returns:
            Tuple of (result, new_state); the input state is never modified
        """
        pass

    def _build_result(self, feedbacks: Dict[str, FeedbackItem], raw_angles: Dict[str, float],
                      new_state: AnalyzerState, rep_completed: bool,
                      primary_angle: Optional[float], view: Optional[str] = None) -> AnalysisResult:
        score, level = aggregate_score(feedbacks, self.weights)
        return AnalysisResult(
            score=score,
            level=level,
            phase=new_state.phase,
            phase_label=self.phase_label(new_state.phase),
            feedbacks=feedbacks,
            raw_angles=raw_angles,
            rep_completed=rep_completed,
            rep_count=new_state.rep_count,
            primary_angle=primary_angle,
            new_state=new_state,
            view=view,
        )


class RepExerciseAnalyzer(BaseExerciseAnalyzer):
    """
    Template for phase-machine analyzers (squat-like and push-up-like families).

    Subclasses provide the primary angle and the per-criterion evaluation; this
    class threads the phase machine and applies the scoring contract.
    """

    STATE_CLASS = AnalyzerState

    def __init__(self, config: Mapping[str, Any]):
        super().__init__(config)
        self.phase_machine = RepPhaseMachine(PhaseThresholds.from_config(config), self.get_exercise_name())

    def create_initial_state(self) -> AnalyzerState:
        return self.STATE_CLASS()

    @abstractmethod
    def _primary_angle(self, pose: Pose3D) -> Optional[float]:
        """Angle that drives the phase machine, or None when its landmarks are not valid."""
        pass

    @abstractmethod
    def _evaluate(self, pose: Pose3D, state: AnalyzerState) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
        """Evaluate every criterion; may return a state with updated family extras."""
        pass

    def _unavailable_feedbacks(self) -> Dict[str, FeedbackItem]:
        return {name: FeedbackItem.unavailable(name) for name in self.criteria()}

    def step(self, state: AnalyzerState, pose: Optional[Pose3D],
             timestamp: Optional[float] = None) -> Tuple[AnalysisResult, AnalyzerState]:
        primary = self._primary_angle(pose) if pose is not None else None
        if primary is None:
            # State carried forward unchanged: a dropped frame must not move the phase.
            if pose is None:
                feedbacks, raw_angles = self._unavailable_feedbacks(), {}
            else:
                feedbacks, raw_angles, _ = self._evaluate(pose, state)
            result = self._build_result(feedbacks, raw_angles, state, False, None)
            return result, state

        new_state, rep_completed = self.phase_machine.advance(state, primary)
        feedbacks, raw_angles, new_state = self._evaluate(pose, new_state)
        raw_angles = dict(raw_angles, primary_angle=round1(primary))
        if rep_completed:
            logger.info(f"{self.get_exercise_name()} rep {new_state.rep_count} completed")
        result = self._build_result(feedbacks, raw_angles, new_state, rep_completed, round1(primary))
        return result, new_state
