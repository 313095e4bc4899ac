from dataclasses import dataclass
from typing import Mapping, Optional

from ..exercise_analysis.base_analyzer import AnalysisResult, CorrectionDirection, FeedbackItem, FeedbackLevel
from ..logging_utils import get_logger

logger = get_logger("FeedbackSelector")

GOOD_REP_MESSAGE = "Good form! Keep it up!"


@dataclass(frozen=True)
class FeedbackCue:
    criterion: Optional[str]
    level: FeedbackLevel
    message: str
    correction: CorrectionDirection = CorrectionDirection.NONE


def merge_feedback(a: Optional[FeedbackItem], b: Optional[FeedbackItem]) -> Optional[FeedbackItem]:
    """
    Merge two items drawn on the same visual element: the worse level wins.

    Unavailable items lose against available ones; ties keep ``a``.
    """
    if a is None or not a.available:
        return b if b is not None and b.available else a
    if b is None or not b.available:
        return a
    return b if b.level > a.level else a


class FeedbackSelector:
    """Picks at most one coaching cue per frame from an analysis result."""

    def __init__(self, weights: Optional[Mapping[str, float]] = None,
                 debounce_frames: int = 2, cooldown_seconds: float = 4.0):
        """
        Args:
            weights: Criterion weights used to break ties between equally bad criteria
            debounce_frames: Frames a violation must persist before it is reported
            cooldown_seconds: Minimum caller-supplied time between two cues
        """
        self.weights = dict(weights or {})
        self.debounce_frames = debounce_frames
        self.cooldown_seconds = cooldown_seconds
        self._last_violation: Optional[str] = None
        self._violation_persist_count = 0
        self._last_cue_time: Optional[float] = None

    def _worst_criterion(self, result: AnalysisResult) -> Optional[str]:
        candidates = [
            (name, item) for name, item in result.available_feedbacks.items()
            if item.level != FeedbackLevel.GOOD
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda c: (-c[1].level.severity, -self.weights.get(c[0], 0.0), c[0]))
        return candidates[0][0]

    def select(self, result: AnalysisResult, timestamp: float) -> Optional[FeedbackCue]:
        """
        Args:
            result: The analyzer output of the current frame
            timestamp: Caller-supplied time of the frame, in seconds

        Returns:
            The cue to deliver now, or None
        """
        violation = self._worst_criterion(result)
        if violation is not None:
            if violation == self._last_violation:
                self._violation_persist_count += 1
            else:
                self._violation_persist_count = 1
                self._last_violation = violation
            if self._violation_persist_count < self.debounce_frames:
                return None
            item = result.feedbacks[violation]
            cue = FeedbackCue(violation, item.level, item.message, item.correction)
        else:
            self._violation_persist_count = 0
            self._last_violation = None
            if not (result.rep_completed and result.level == FeedbackLevel.GOOD):
                return None
            cue = FeedbackCue(None, FeedbackLevel.GOOD, GOOD_REP_MESSAGE)

        # Avoid feedback spam
        if self._last_cue_time is not None and timestamp - self._last_cue_time < self.cooldown_seconds:
            return None
        self._last_cue_time = timestamp
        logger.debug(f"Feedback cue: {cue.message}")
        return cue

    def reset(self) -> None:
        self._last_violation = None
        self._violation_persist_count = 0
        self._last_cue_time = None
