"""
Posture checks shared by the standing exercise families: neck alignment,
lateral pelvic tilt with its frame-to-frame stability, and torso rotation.

Every family keeps its own ranges and messages for these criteria in its
config, under the usual ``thresholds`` and ``messages`` keys, plus a
``pelvis`` block with the stability settings.
"""
from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..logging_utils import get_logger
from ..pose_detection.landmarks import BlazePoseLandmark as LM
from .base_analyzer import (
    AnalyzerState,
    BaseExerciseAnalyzer,
    FeedbackItem,
    FeedbackLevel,
    evaluate_criterion,
    has_landmarks,
    message_for,
)
from .config_utils import require
from .pose_utils import angle_at, angle_with_vertical, distance_2d, midpoint, round1, round_half_up, torso_rotation

logger = get_logger("AlignmentChecks")

SHOULDERS = (LM.LEFT_SHOULDER, LM.RIGHT_SHOULDER)
HIPS = (LM.LEFT_HIP, LM.RIGHT_HIP)
EARS = (LM.LEFT_EAR, LM.RIGHT_EAR)

FACING_MIN_OFFSET = 0.01


@dataclass(frozen=True)
class PelvisState(AnalyzerState):
    """Analyzer state that also keeps the recent lateral pelvic tilt samples."""
    pelvic_history: Tuple[float, ...] = ()


@dataclass(frozen=True)
class NeckMeasurement:
    neck_angle: float
    forward_posture: float
    extension_flexion: float


def facing_direction(points) -> float:
    """
    +1 when the subject faces +x in the image, -1 when facing -x.

    Read from toe-versus-heel of the first foot that shows it, then from
    nose-versus-ear; +1 when neither tells (front views).
    """
    for side in ("left", "right"):
        toe, heel = LM.side(side, "foot_index"), LM.side(side, "heel")
        if toe in points and heel in points:
            offset = points[toe].x - points[heel].x
            if abs(offset) > FACING_MIN_OFFSET:
                return 1.0 if offset > 0 else -1.0
    ears = [points[index] for index in EARS if index in points]
    if LM.NOSE in points and ears:
        offset = points[LM.NOSE].x - float(np.mean([ear.x for ear in ears]))
        if abs(offset) > FACING_MIN_OFFSET:
            return 1.0 if offset > 0 else -1.0
    return 1.0


def measure_neck(points, facing: float = 1.0) -> Optional[NeckMeasurement]:
    """
    Head position relative to the shoulders.

    ``neck_angle`` is the lean of the shoulder-center to ear line from vertical.
    ``forward_posture`` is the ear offset from the hip-shoulder axis towards
    the chest (``facing`` tells which side that is), as a percentage of torso
    length; 0 when the hips are not visible. ``extension_flexion``
    is the nose-ear-shoulder angle minus 90: positive with the chin raised,
    negative with the chin tucked, 0 without a nose.

    Returns:
        NeckMeasurement, or None unless both shoulders and an ear are visible
    """
    ears = [points[index] for index in EARS if index in points]
    if not ears or not has_landmarks(points, SHOULDERS):
        return None
    ear = midpoint(*ears) if len(ears) == 2 else ears[0]
    shoulder_center = midpoint(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER])

    forward = 0.0
    if has_landmarks(points, HIPS):
        hip_center = midpoint(points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
        torso_length = distance_2d(shoulder_center, hip_center)
        if torso_length > 0:
            # unit normal of the torso axis, chest side
            nx = (hip_center.y - shoulder_center.y) * facing / torso_length
            ny = (shoulder_center.x - hip_center.x) * facing / torso_length
            offset = (ear.x - shoulder_center.x) * nx + (ear.y - shoulder_center.y) * ny
            forward = max(0.0, offset / torso_length * 100)

    extension = 0.0
    if LM.NOSE in points:
        extension = angle_at(points[LM.NOSE], ear, shoulder_center) - 90

    return NeckMeasurement(
        neck_angle=round1(angle_with_vertical(shoulder_center, ear)),
        forward_posture=round1(forward),
        extension_flexion=round1(extension),
    )


def neck_alignment_feedback(analyzer: BaseExerciseAnalyzer, neck: NeckMeasurement) -> FeedbackItem:
    """
    Report the first neck fault found: forward head, then extension, then flexion.

    Each fault is scored against its own ranges; a neck without faults is good.
    """
    forward_t = analyzer.thresholds("neck_forward_posture")
    extension_t = analyzer.thresholds("neck_extension")
    messages = analyzer.messages("neck_alignment")

    if neck.forward_posture > forward_t.ideal.max:
        value, thresholds, side = neck.forward_posture, forward_t, "forward"
    elif neck.extension_flexion > extension_t.ideal.max:
        value, thresholds, side = neck.extension_flexion, extension_t, "extended"
    elif neck.extension_flexion < extension_t.ideal.min:
        value, thresholds, side = neck.extension_flexion, extension_t, "flexed"
    else:
        message, _ = message_for(messages, FeedbackLevel.GOOD)
        return FeedbackItem(level=FeedbackLevel.GOOD, message=message, value=neck.neck_angle, score=100)

    level = thresholds.classify(value)
    message, correction = message_for(messages, level, side)
    return FeedbackItem(
        level=level,
        message=message,
        correction=correction,
        value=value,
        score=analyzer.curve.score(value, thresholds),
        ideal_range=thresholds.ideal,
        acceptable_range=thresholds.acceptable,
    )


# --- Pelvis ---
def lateral_pelvic_tilt(points, min_hip_width: float) -> Optional[float]:
    """
    Frontal-plane tilt of the hip line in degrees, positive when the right hip is higher.

    None when a hip is missing or the hips are closer than ``min_hip_width``
    in the image, as they are in a side view.
    """
    if not has_landmarks(points, HIPS):
        return None
    left, right = points[LM.LEFT_HIP], points[LM.RIGHT_HIP]
    width = abs(right.x - left.x)
    if width < min_hip_width:
        logger.debug(f"Hips {width:.3f} apart in the image; lateral pelvic tilt skipped")
        return None
    return float(np.degrees(np.arctan2(left.y - right.y, width)))


def pelvic_stability(history: Sequence[float], min_samples: int) -> int:
    """100 minus the variance of the recent tilt samples (floored at 0); 100 until enough samples exist."""
    if len(history) < min_samples:
        return 100
    return round_half_up(100 - min(100.0, float(np.var(history))))


def _pelvic_tilt_feedback(analyzer: BaseExerciseAnalyzer, tilt: float, stability: int) -> FeedbackItem:
    settings = require(analyzer.config, "pelvis")
    weights = require(settings, "component_weights")
    tilt_t = analyzer.thresholds("pelvic_tilt")
    stability_t = analyzer.thresholds("pelvic_stability")
    value = abs(tilt)

    tilt_level = tilt_t.classify(value)
    stability_level = stability_t.classify(stability)
    if stability_level > tilt_level:
        level = stability_level
        message, correction = message_for(analyzer.messages("pelvic_stability"), level, "below")
    else:
        level = tilt_level
        side = "right_high" if tilt > 0 else "left_high"
        message, correction = message_for(analyzer.messages("pelvic_tilt"), level, side)

    score = (float(require(weights, "tilt")) * analyzer.curve.score(value, tilt_t)
             + float(require(weights, "stability")) * stability)
    return FeedbackItem(
        level=level,
        message=message,
        correction=correction,
        value=round1(value),
        score=round_half_up(score),
        ideal_range=tilt_t.ideal,
        acceptable_range=tilt_t.acceptable,
        angle_points=(LM.LEFT_HIP, LM.RIGHT_HIP, LM.RIGHT_KNEE),
    )


def evaluate_shared_checks(analyzer: BaseExerciseAnalyzer, points, state: AnalyzerState,
                           facing: float = 1.0) -> Tuple[Dict[str, FeedbackItem], Dict[str, float], AnalyzerState]:
    """
    Neck alignment, pelvic tilt and torso rotation for one frame.

    Returns:
        Tuple of (feedbacks, raw values, state with the tilt sample appended
        when the state keeps a pelvic history)
    """
    feedbacks: Dict[str, FeedbackItem] = {}
    raw: Dict[str, float] = {}

    neck = measure_neck(points, facing)
    if neck is not None:
        raw.update(neck_angle=neck.neck_angle, forward_head_posture=neck.forward_posture,
                   neck_extension=neck.extension_flexion)
        feedbacks["neck_alignment"] = neck_alignment_feedback(analyzer, neck)
    else:
        feedbacks["neck_alignment"] = FeedbackItem.unavailable("neck_alignment")

    settings = require(analyzer.config, "pelvis")
    tilt = lateral_pelvic_tilt(points, float(require(settings, "min_hip_width")))
    if tilt is not None:
        if isinstance(state, PelvisState):
            history_size = int(require(settings, "history_size"))
            state = replace(state, pelvic_history=(state.pelvic_history + (tilt,))[-history_size:])
            history = state.pelvic_history
        else:
            history = (tilt,)
        stability = pelvic_stability(history, int(require(settings, "min_samples")))
        raw.update(lateral_pelvic_tilt=round1(tilt), pelvic_stability=float(stability))
        feedbacks["pelvic_tilt"] = _pelvic_tilt_feedback(analyzer, tilt, stability)
    else:
        feedbacks["pelvic_tilt"] = FeedbackItem.unavailable("pelvic_tilt")

    if has_landmarks(points, SHOULDERS + HIPS):
        rotation = torso_rotation(points[LM.LEFT_SHOULDER], points[LM.RIGHT_SHOULDER],
                                  points[LM.LEFT_HIP], points[LM.RIGHT_HIP])
        raw["torso_rotation"] = rotation
        feedbacks["torso_rotation"] = evaluate_criterion(
            rotation, analyzer.thresholds("torso_rotation"), analyzer.curve, analyzer.messages("torso_rotation"))
    else:
        feedbacks["torso_rotation"] = FeedbackItem.unavailable("torso_rotation")

    return feedbacks, raw, state
