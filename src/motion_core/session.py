from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .exercise_analysis import create_analyzer
from .exercise_analysis.base_analyzer import AnalysisResult, AnalyzerKind, AnalyzerState, BaseExerciseAnalyzer
from .exercise_analysis.bilateral_tracker import BilateralAngleData, BilateralSymmetryTracker, ImbalanceTrend, JointSet
from .exercise_analysis.exercise_detector import (
    ANALYZED_EXERCISES, UNKNOWN, ExerciseDetectionResult, analyzer_kind_for, detect_exercise_type,
)
from .exercise_analysis.plank_analyzer import PlankState
from .exercise_analysis.rom_benchmark import (
    ROM_TRACKER_TYPES, JointROMTracker, SessionROMSummary, create_rom_tracker,
)
from .feedback.feedback_selector import FeedbackCue, FeedbackSelector
from .logging_utils import get_logger
from .pose_detection.landmarks import Pose3D

logger = get_logger("MotionSession")

DETECTION_BUFFER_SIZE = 30

UPPER_BODY_KINDS = (AnalyzerKind.PUSHUP, AnalyzerKind.PLANK)

# raw angle keys feeding each ROM joint, as (side, key)
ROM_SOURCES = {
    "knee_flexion": (("left", "left_knee_angle"), ("right", "right_knee_angle")),
    "hip_flexion": (("left", "left_hip_angle"), ("right", "right_hip_angle")),
    "ankle_angle": (("left", "left_ankle_angle"), ("right", "right_ankle_angle")),
    "torso_angle": ((None, "torso_angle"),),
}


@dataclass(frozen=True)
class SessionFrame:
    result: AnalysisResult
    bilateral: Dict[str, Optional[BilateralAngleData]]
    cue: Optional[FeedbackCue] = None


@dataclass(frozen=True)
class SessionSummary:
    exercise_type: Optional[str]
    detection: Optional[ExerciseDetectionResult]
    frames_processed: int
    rep_count: int
    last_score: Optional[int]
    symmetry_trends: List[ImbalanceTrend] = field(default_factory=list)
    rom: Optional[SessionROMSummary] = None
    hold_time: Optional[float] = None


class MotionAnalysisSession:
    """
    Frame-by-frame pipeline for one exercise session.

    Without an explicit kind, frames are buffered until the exercise type is
    detected; the buffered frames are then replayed through the analyzer and
    their analyses are kept in ``replayed_frames``.
    All timestamps are supplied by the caller, in seconds.
    """

    def __init__(self, kind: Optional[Union[AnalyzerKind, str]] = None, **analyzer_kwargs):
        """
        Args:
            kind: Analyzer to use; None to detect it from the first frames
            **analyzer_kwargs: Passed to the analyzer constructor (e.g. ``config``)
        """
        self._analyzer_kwargs = analyzer_kwargs
        self._buffer: deque = deque(maxlen=DETECTION_BUFFER_SIZE)
        self.detection: Optional[ExerciseDetectionResult] = None
        self.unsupported = False
        self.analyzer: Optional[BaseExerciseAnalyzer] = None
        self.state: Optional[AnalyzerState] = None
        self.bilateral: Optional[BilateralSymmetryTracker] = None
        self.rom: Optional[JointROMTracker] = None
        self.selector: Optional[FeedbackSelector] = None
        self.last_result: Optional[AnalysisResult] = None
        self.replayed_frames: List[SessionFrame] = []
        self.frames_processed = 0
        if kind is not None:
            self._start(AnalyzerKind(kind))

    @property
    def kind(self) -> Optional[AnalyzerKind]:
        if self.analyzer is None:
            return None
        return AnalyzerKind(self.analyzer.get_exercise_name())

    def _start(self, kind: AnalyzerKind) -> None:
        self.analyzer = create_analyzer(kind, **self._analyzer_kwargs)
        self.state = self.analyzer.create_initial_state()
        joint_set = JointSet.UPPER_BODY if kind in UPPER_BODY_KINDS else JointSet.LOWER_BODY
        self.bilateral = BilateralSymmetryTracker(joint_set)
        self.selector = FeedbackSelector(self.analyzer.weights)
        self.rom = create_rom_tracker(kind.value) if kind.value in ROM_TRACKER_TYPES else None
        logger.info(f"Session started: {kind.value}")

    def _detect(self, poses: List[Optional[Pose3D]]) -> None:
        detection = detect_exercise_type(poses)
        if detection.detected_type == UNKNOWN:
            return
        self.detection = detection
        if detection.detected_type not in ANALYZED_EXERCISES:
            logger.warning(f"Detected {detection.detected_type}, which has no analyzer; session idle")
            self.unsupported = True
            return
        self._start(analyzer_kind_for(detection.detected_type))

    def _analyze(self, pose: Optional[Pose3D], timestamp: float) -> SessionFrame:
        if self.rom is not None and not self.rom.is_tracking:
            self.rom.start(timestamp)

        result, self.state = self.analyzer.step(self.state, pose, timestamp)
        self.frames_processed += 1
        self.last_result = result

        bilateral = self.bilateral.analyze(pose)
        if result.rep_completed:
            self.bilateral.add_rep(result.rep_count, timestamp, bilateral)

        if self.rom is not None:
            for joint, sources in ROM_SOURCES.items():
                for side, key in sources:
                    self.rom.record_angle(joint, result.raw_angles.get(key), side)

        cue = self.selector.select(result, timestamp)
        return SessionFrame(result=result, bilateral=bilateral, cue=cue)

    def process(self, pose: Optional[Pose3D], timestamp: float) -> Optional[SessionFrame]:
        """
        Feed one frame.

        Returns:
            The analysis of this frame, or None while the exercise is still
            being detected (or was detected but has no analyzer). On the frame
            that completes detection the whole buffer is analyzed: this returns
            the last of those analyses and ``replayed_frames`` holds all of them,
            so rep completions and cues from earlier buffered frames stay visible.
        """
        if self.unsupported:
            return None
        if self.analyzer is not None:
            return self._analyze(pose, timestamp)

        self._buffer.append((pose, timestamp))
        if len(self._buffer) < DETECTION_BUFFER_SIZE:
            return None
        frames = list(self._buffer)
        self._detect([p for p, _ in frames])
        if self.analyzer is None:
            return None

        self._buffer.clear()
        self.replayed_frames = [self._analyze(p, t) for p, t in frames]
        return self.replayed_frames[-1]

    def summary(self, timestamp: float) -> SessionSummary:
        return SessionSummary(
            exercise_type=self.kind.value if self.kind is not None else None,
            detection=self.detection,
            frames_processed=self.frames_processed,
            rep_count=self.state.rep_count if self.state is not None else 0,
            last_score=self.last_result.score if self.last_result is not None else None,
            symmetry_trends=self.bilateral.calculate_trends() if self.bilateral is not None else [],
            rom=self.rom.summary(timestamp) if self.rom is not None else None,
            hold_time=self.state.elapsed_hold_time if isinstance(self.state, PlankState) else None,
        )

    def reset(self) -> None:
        """Start over with the same analyzer (or with detection, if none was chosen yet)."""
        self._buffer.clear()
        self.last_result = None
        self.replayed_frames = []
        self.frames_processed = 0
        if self.analyzer is None:
            self.detection = None
            self.unsupported = False
            return
        self.state = self.analyzer.create_initial_state()
        self.bilateral.reset()
        self.selector.reset()
        if self.rom is not None:
            self.rom = create_rom_tracker(self.kind.value)
