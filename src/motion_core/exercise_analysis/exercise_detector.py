"""
Exercise-type detection from the first frames of a recording.

Per-frame joint angles and hip movement are summarised into MotionMetrics,
which are then matched against the static exercise profiles in
``exercise_profiles.json``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from ..exceptions import ConfigurationError
from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from ..pose_detection.landmarks import Pose3D
from .base_analyzer import AnalyzerKind
from .config_utils import load_config, require
from .pose_utils import angle_2d, is_valid_landmark, to_point

_PROFILE_CONFIG = load_config("exercise_profiles")

logger = get_logger("ExerciseDetector")

UNKNOWN = "unknown"

DETECTION_LANDMARKS = (
    LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER, LM.LEFT_ELBOW, LM.RIGHT_ELBOW,
    LM.LEFT_WRIST, LM.RIGHT_WRIST, LM.LEFT_HIP, LM.RIGHT_HIP,
    LM.LEFT_KNEE, LM.RIGHT_KNEE, LM.LEFT_ANKLE, LM.RIGHT_ANKLE,
)


@dataclass(frozen=True)
class ExerciseProfile:
    exercise_type: str
    name: str
    orientation: str
    knee_angle_range: Tuple[float, float]
    hip_angle_range: Tuple[float, float]
    elbow_angle_range: Tuple[float, float]
    vertical_displacement_threshold: float
    horizontal_displacement_threshold: float
    cycle_time_ms: Tuple[float, float]

    @property
    def expected_knee_range(self) -> float:
        return self.knee_angle_range[1] - self.knee_angle_range[0]

    @property
    def expected_hip_range(self) -> float:
        return self.hip_angle_range[1] - self.hip_angle_range[0]

    @classmethod
    def from_config(cls, exercise_type: str, entry: Mapping[str, Any]) -> "ExerciseProfile":
        def span(key):
            values = require(entry, key)
            return float(require(values, "min")), float(require(values, "max"))
        return cls(
            exercise_type=exercise_type,
            name=require(entry, "name"),
            orientation=require(entry, "orientation"),
            knee_angle_range=span("knee_angle_range"),
            hip_angle_range=span("hip_angle_range"),
            elbow_angle_range=span("elbow_angle_range"),
            vertical_displacement_threshold=float(require(entry, "vertical_displacement_threshold")),
            horizontal_displacement_threshold=float(require(entry, "horizontal_displacement_threshold")),
            cycle_time_ms=span("cycle_time_ms"),
        )


@dataclass(frozen=True)
class MotionMetrics:
    frames_analyzed: int = 0
    vertical_displacement: float = 0.0
    horizontal_displacement: float = 0.0
    knee_angle_range: Tuple[float, float] = (0.0, 0.0)
    hip_angle_range: Tuple[float, float] = (0.0, 0.0)
    elbow_angle_range: Tuple[float, float] = (0.0, 0.0)
    body_orientation: str = UNKNOWN
    movement_cycle_detected: bool = False


@dataclass(frozen=True)
class ExerciseMatch:
    exercise_type: str
    confidence: float


@dataclass(frozen=True)
class ExerciseDetectionResult:
    detected_type: str
    confidence: float
    alternatives: List[ExerciseMatch] = field(default_factory=list)
    metrics: MotionMetrics = field(default_factory=MotionMetrics)


def load_profiles(config: Optional[Mapping[str, Any]] = None) -> Dict[str, ExerciseProfile]:
    config = config if config is not None else _PROFILE_CONFIG
    return {name: ExerciseProfile.from_config(name, entry) for name, entry in require(config, "profiles").items()}


EXERCISE_PROFILES = load_profiles()
ANALYZED_EXERCISES = tuple(require(_PROFILE_CONFIG, "analyzers"))


def _detection_settings(overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    settings = dict(require(_PROFILE_CONFIG, "detection"))
    if overrides:
        settings.update(overrides)
    return settings


def _is_usable(pose: Optional[Pose3D], min_score: float) -> bool:
    return pose is not None and all(is_valid_landmark(pose[index], min_score) for index in DETECTION_LANDMARKS)


def _mean_angle(pose: Pose3D, proximal: str, joint: str, distal: str) -> float:
    angles = [
        angle_2d(to_point(pose[LM.side(side, proximal)]),
                 to_point(pose[LM.side(side, joint)]),
                 to_point(pose[LM.side(side, distal)]))
        for side in ("left", "right")
    ]
    return (angles[0] + angles[1]) / 2


def calculate_motion_metrics(poses: Sequence[Pose3D], settings: Optional[Mapping[str, Any]] = None) -> MotionMetrics:
    """
    Summarise joint angle ranges, hip movement and body orientation over a window.

    Args:
        poses: Frames that all carry the detection landmarks
        settings: Detection settings (orientation thresholds, cycle range)

    Returns:
        MotionMetrics of the window
    """
    settings = _detection_settings(settings)
    knee = [_mean_angle(p, "hip", "knee", "ankle") for p in poses]
    hip = [_mean_angle(p, "shoulder", "hip", "knee") for p in poses]
    elbow = [_mean_angle(p, "shoulder", "elbow", "wrist") for p in poses]

    hip_y = np.array([(p[LM.LEFT_HIP].y + p[LM.RIGHT_HIP].y) / 2 for p in poses])
    hip_x = np.array([(p[LM.LEFT_HIP].x + p[LM.RIGHT_HIP].x) / 2 for p in poses])
    shoulder_y = np.array([(p[LM.LEFT_SHOULDER].y + p[LM.RIGHT_SHOULDER].y) / 2 for p in poses])

    orientation_cfg = require(settings, "orientation")
    separation = abs(float(np.mean(shoulder_y)) - float(np.mean(hip_y)))
    if separation > require(orientation_cfg, "vertical_min"):
        orientation = "vertical"
    elif separation < require(orientation_cfg, "horizontal_max"):
        orientation = "horizontal"
    else:
        orientation = UNKNOWN

    knee_range = (min(knee), max(knee))
    hip_range = (min(hip), max(hip))
    elbow_range = (min(elbow), max(elbow))
    cycle = float(require(settings, "movement_cycle_range"))

    return MotionMetrics(
        frames_analyzed=len(poses),
        vertical_displacement=float(np.ptp(hip_y)),
        horizontal_displacement=float(np.ptp(hip_x)),
        knee_angle_range=knee_range,
        hip_angle_range=hip_range,
        elbow_angle_range=elbow_range,
        body_orientation=orientation,
        movement_cycle_detected=(knee_range[1] - knee_range[0]) > cycle or (hip_range[1] - hip_range[0]) > cycle,
    )


def score_profile(metrics: MotionMetrics, profile: ExerciseProfile,
                  settings: Optional[Mapping[str, Any]] = None) -> float:
    """Weighted match of the observed metrics against one profile, in [0, 1]."""
    settings = _detection_settings(settings)
    weights = require(settings, "weights")
    tolerance = float(require(settings, "range_tolerance"))

    orientation = 1.0 if metrics.body_orientation == profile.orientation else 0.0
    knee_range = metrics.knee_angle_range[1] - metrics.knee_angle_range[0]
    hip_range = metrics.hip_angle_range[1] - metrics.hip_angle_range[0]
    knee = 1 - abs(knee_range - profile.expected_knee_range) / tolerance
    hip = 1 - abs(hip_range - profile.expected_hip_range) / tolerance
    vertical = metrics.vertical_displacement / profile.vertical_displacement_threshold

    partials = {
        "orientation": orientation,
        "knee_range": knee,
        "hip_range": hip,
        "vertical_displacement": vertical,
    }
    score = sum(float(np.clip(value, 0.0, 1.0)) * float(require(weights, name)) for name, value in partials.items())
    return float(np.clip(score, 0.0, 1.0))


def detect_exercise_type(frames: Sequence[Optional[Pose3D]],
                         config: Optional[Mapping[str, Any]] = None) -> ExerciseDetectionResult:
    """
    Detect which exercise a window of frames shows.

    Args:
        frames: Per-frame poses in capture order; None for frames without a body
        config: Optional overrides of the detection settings

    Returns:
        ExerciseDetectionResult; ``unknown`` when too few frames are usable or
        no profile reaches the confidence threshold
    """
    settings = _detection_settings(config)
    window = list(frames)[:int(require(settings, "frames_to_analyze"))]
    min_score = float(require(settings, "min_landmark_score"))
    usable = [pose for pose in window if _is_usable(pose, min_score)]

    if len(usable) < int(require(settings, "min_frames")):
        logger.info(f"Exercise detection skipped: {len(usable)} usable frames")
        return ExerciseDetectionResult(
            detected_type=UNKNOWN,
            confidence=float(require(settings, "insufficient_data_confidence")),
            metrics=MotionMetrics(frames_analyzed=len(usable)),
        )

    metrics = calculate_motion_metrics(usable, settings)
    ranked = sorted(
        (ExerciseMatch(name, score_profile(metrics, profile, settings)) for name, profile in EXERCISE_PROFILES.items()),
        key=lambda match: match.confidence,
        reverse=True,
    )
    top = ranked[0]
    max_alternatives = int(require(settings, "max_alternatives"))
    min_alternative = float(require(settings, "alternative_min_confidence"))
    alternatives = [m for m in ranked[1:1 + max_alternatives] if m.confidence > min_alternative]

    detected = top.exercise_type if top.confidence >= float(require(settings, "confidence_threshold")) else UNKNOWN
    logger.info(f"Detected exercise: {detected} (confidence {top.confidence:.2f})")
    return ExerciseDetectionResult(detected_type=detected, confidence=top.confidence,
                                   alternatives=alternatives, metrics=metrics)


def analyzer_kind_for(exercise_type: str) -> AnalyzerKind:
    """Map a detected exercise type to the analyzer that coaches it."""
    analyzers = require(_PROFILE_CONFIG, "analyzers")
    if exercise_type not in analyzers:
        logger.error(f"No analyzer available for exercise type '{exercise_type}'")
        raise ConfigurationError(f"No analyzer available for exercise type '{exercise_type}'")
    return AnalyzerKind(analyzers[exercise_type])
