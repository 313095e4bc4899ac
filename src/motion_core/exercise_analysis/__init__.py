"""
Exercise analysis package: geometry, per-exercise analyzers, exercise
detection, bilateral symmetry and ROM benchmarking.
"""
from typing import Union

from ..exceptions import ConfigurationError
from .alignment_checks import PelvisState
from .base_analyzer import (
    AnalysisResult,
    AnalyzerKind,
    AnalyzerState,
    BaseExerciseAnalyzer,
    CorrectionDirection,
    FeedbackItem,
    FeedbackLevel,
    RepPhase,
    worse_level,
)
from .bilateral_tracker import BilateralAngleData, BilateralSymmetryTracker, JointSet, Trend
from .deadlift_analyzer import DeadliftAnalyzer
from .exercise_detector import ExerciseDetectionResult, analyzer_kind_for, detect_exercise_type
from .lunge_analyzer import LungeAnalyzer, LungeState
from .plank_analyzer import PlankAnalyzer, PlankState
from .pushup_analyzer import PushupAnalyzer
from .rom_benchmark import JointROMTracker, MobilityAssessment, compare_to_benchmark
from .squat_analyzer import SquatAnalyzer, SquatState
from .static_posture_analyzer import PostureView, StaticPostureAnalyzer
from .valgus_analyzer import analyze_elbow_valgus, analyze_knee_valgus

# Register analyzers
ANALYZER_REGISTRY = {
    AnalyzerKind.SQUAT: SquatAnalyzer,
    AnalyzerKind.PUSHUP: PushupAnalyzer,
    AnalyzerKind.LUNGE: LungeAnalyzer,
    AnalyzerKind.DEADLIFT: DeadliftAnalyzer,
    AnalyzerKind.PLANK: PlankAnalyzer,
    AnalyzerKind.STATIC_POSTURE: StaticPostureAnalyzer,
}


def create_analyzer(kind: Union[AnalyzerKind, str], **kwargs) -> BaseExerciseAnalyzer:
    """Instantiate the analyzer registered for ``kind``."""
    try:
        analyzer_cls = ANALYZER_REGISTRY[AnalyzerKind(kind)]
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"No analyzer registered for '{kind}'") from e
    return analyzer_cls(**kwargs)


__all__ = [
    'ANALYZER_REGISTRY',
    'AnalysisResult',
    'AnalyzerKind',
    'AnalyzerState',
    'BaseExerciseAnalyzer',
    'BilateralAngleData',
    'BilateralSymmetryTracker',
    'CorrectionDirection',
    'DeadliftAnalyzer',
    'ExerciseDetectionResult',
    'FeedbackItem',
    'FeedbackLevel',
    'JointROMTracker',
    'JointSet',
    'LungeAnalyzer',
    'LungeState',
    'MobilityAssessment',
    'PelvisState',
    'PlankAnalyzer',
    'PlankState',
    'PostureView',
    'PushupAnalyzer',
    'RepPhase',
    'SquatAnalyzer',
    'SquatState',
    'StaticPostureAnalyzer',
    'Trend',
    'analyze_elbow_valgus',
    'analyze_knee_valgus',
    'analyzer_kind_for',
    'compare_to_benchmark',
    'create_analyzer',
    'detect_exercise_type',
    'worse_level',
]
