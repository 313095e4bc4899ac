"""
Range-of-motion (ROM) benchmarking.

An achieved range (max - min of a joint angle over a session) is compared with
a population benchmark, or a per-user override of it, and classified as
normal, limited or excessive mobility.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from ..exceptions import ConfigurationError
from ..logging_utils import get_logger
from .base_analyzer import FeedbackLevel, ValueRange
from .config_utils import load_config, require
from .pose_utils import round1, round_half_up

_ROM_CONFIG = load_config("rom_benchmarks")

logger = get_logger("ROMBenchmark")


class MobilityAssessment(str, Enum):
    NORMAL = "normal"
    LIMITED = "limited"
    EXCESSIVE = "excessive"


class RecommendationType(str, Enum):
    STRETCH = "stretch"
    STRENGTHEN = "strengthen"
    MAINTAIN = "maintain"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(frozen=True)
class ROMBenchmark:
    joint: str
    name: str
    normal_range: ValueRange
    limited_threshold: float
    excessive_threshold: float

    @classmethod
    def from_config(cls, joint: str, entry: Mapping[str, Any]) -> "ROMBenchmark":
        return cls(
            joint=joint,
            name=require(entry, "name"),
            normal_range=ValueRange.from_config(require(entry, "normal_range")),
            limited_threshold=float(require(entry, "limited_threshold")),
            excessive_threshold=float(require(entry, "excessive_threshold")),
        )


@dataclass(frozen=True)
class ROMComparison:
    achieved_range: float
    percent_of_benchmark: float
    assessment: MobilityAssessment
    level: FeedbackLevel
    message: str


@dataclass(frozen=True)
class JointROMResult:
    joint: str
    side: Optional[str]
    min_angle: float
    max_angle: float
    range_achieved: float
    benchmark: ROMBenchmark
    assessment: MobilityAssessment
    percent_of_normal: float
    level: FeedbackLevel
    message: str


@dataclass(frozen=True)
class ROMRecommendation:
    type: RecommendationType
    joint: str
    priority: Priority
    message: str
    exercises: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionROMSummary:
    exercise_type: str
    start_time: float
    duration: float
    joints: List[JointROMResult]
    overall_mobility: MobilityAssessment
    recommendations: List[ROMRecommendation] = field(default_factory=list)


@dataclass(frozen=True)
class ROMChange:
    joint: str
    side: Optional[str]
    change: float
    improved: bool


def load_benchmarks(config: Optional[Mapping[str, Any]] = None) -> Dict[str, ROMBenchmark]:
    config = config if config is not None else _ROM_CONFIG
    return {joint: ROMBenchmark.from_config(joint, entry) for joint, entry in require(config, "benchmarks").items()}


ROM_BENCHMARKS = load_benchmarks()
ROM_TRACKER_TYPES = tuple(require(_ROM_CONFIG, "trackers"))


def with_user_overrides(overrides: Mapping[str, Mapping[str, Any]],
                        benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> Dict[str, ROMBenchmark]:
    """
    Merge per-user calibration entries over the population benchmarks.

    Each override may replace any of ``normal_range``, ``limited_threshold``
    and ``excessive_threshold``; omitted fields keep the population value.
    Overrides for joints without a population benchmark must be complete.
    """
    merged = dict(benchmarks if benchmarks is not None else ROM_BENCHMARKS)
    for joint, entry in overrides.items():
        joint = resolve_joint(joint)
        base = merged.get(joint)
        if base is None:
            merged[joint] = ROMBenchmark.from_config(joint, entry)
            continue
        normal_range = ValueRange.from_config(entry["normal_range"]) if "normal_range" in entry else base.normal_range
        merged[joint] = ROMBenchmark(
            joint=joint,
            name=entry.get("name", base.name),
            normal_range=normal_range,
            limited_threshold=float(entry.get("limited_threshold", base.limited_threshold)),
            excessive_threshold=float(entry.get("excessive_threshold", base.excessive_threshold)),
        )
    logger.info(f"Applied user ROM calibration for: {', '.join(sorted(overrides))}")
    return merged


def resolve_joint(joint: str) -> str:
    return _ROM_CONFIG.get("aliases", {}).get(joint, joint)


def get_benchmark(joint: str, benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> ROMBenchmark:
    benchmarks = benchmarks if benchmarks is not None else ROM_BENCHMARKS
    key = resolve_joint(joint)
    if key not in benchmarks:
        logger.error(f"No ROM benchmark for joint '{joint}'")
        raise ConfigurationError(f"No ROM benchmark for joint '{joint}'")
    return benchmarks[key]


def assess_mobility(achieved_range: float, benchmark: ROMBenchmark) -> MobilityAssessment:
    if achieved_range >= benchmark.excessive_threshold:
        return MobilityAssessment.EXCESSIVE
    if achieved_range < benchmark.limited_threshold:
        return MobilityAssessment.LIMITED
    return MobilityAssessment.NORMAL


def compare_to_benchmark(achieved_range: float, benchmark: Union[ROMBenchmark, str],
                         benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> ROMComparison:
    """
    Classify an achieved range against a benchmark.

    Args:
        achieved_range: max - min of the joint angle, in degrees
        benchmark: A ROMBenchmark or the name of a bundled joint benchmark
        benchmarks: Benchmark table used to resolve names (user overrides)

    Returns:
        ROMComparison with percent of the benchmark maximum, assessment and level

    Raises:
        ConfigurationError: If the named benchmark does not exist
    """
    if isinstance(benchmark, str):
        benchmark = get_benchmark(benchmark, benchmarks)
    percent = achieved_range / benchmark.normal_range.max * 100
    assessment = assess_mobility(achieved_range, benchmark)
    shown = round_half_up(percent)

    if assessment == MobilityAssessment.NORMAL:
        level = FeedbackLevel.GOOD
        message = f"{benchmark.name} mobility is within normal range ({shown}%)"
    elif assessment == MobilityAssessment.LIMITED:
        limited_error = float(_ROM_CONFIG.get("limited_error_percent", 70))
        level = FeedbackLevel.ERROR if percent < limited_error else FeedbackLevel.WARNING
        message = f"{benchmark.name} mobility is limited ({shown}%)"
    else:
        level = FeedbackLevel.WARNING
        message = f"{benchmark.name} mobility is excessive ({shown}%)"

    return ROMComparison(
        achieved_range=round1(achieved_range),
        percent_of_benchmark=round1(percent),
        assessment=assessment,
        level=level,
        message=message,
    )


def _exercises(kind: RecommendationType, joint: str) -> Tuple[str, ...]:
    return tuple(_ROM_CONFIG.get("exercises", {}).get(kind.value, {}).get(joint, ()))


def generate_recommendations(results: Sequence[JointROMResult]) -> List[ROMRecommendation]:
    """One recommendation per joint result, most urgent first."""
    limited_error = float(_ROM_CONFIG.get("limited_error_percent", 70))
    recommendations = []
    for result in results:
        name = result.benchmark.name
        if result.assessment == MobilityAssessment.LIMITED:
            recommendations.append(ROMRecommendation(
                type=RecommendationType.STRETCH,
                joint=result.joint,
                priority=Priority.HIGH if result.percent_of_normal < limited_error else Priority.MEDIUM,
                message=f"{name} mobility is limited. Stretching recommended.",
                exercises=_exercises(RecommendationType.STRETCH, result.joint),
            ))
        elif result.assessment == MobilityAssessment.EXCESSIVE:
            recommendations.append(ROMRecommendation(
                type=RecommendationType.STRENGTHEN,
                joint=result.joint,
                priority=Priority.MEDIUM,
                message=f"{name} mobility is excessive. Stabilization exercises recommended.",
                exercises=_exercises(RecommendationType.STRENGTHEN, result.joint),
            ))
        else:
            recommendations.append(ROMRecommendation(
                type=RecommendationType.MAINTAIN,
                joint=result.joint,
                priority=Priority.LOW,
                message=f"{name} mobility is normal. Maintain current exercises.",
            ))
    return sorted(recommendations, key=lambda r: _PRIORITY_ORDER[r.priority])


def overall_mobility(results: Sequence[JointROMResult]) -> MobilityAssessment:
    if not results:
        return MobilityAssessment.NORMAL
    limited = sum(1 for r in results if r.assessment == MobilityAssessment.LIMITED)
    if limited > len(results) / 2:
        return MobilityAssessment.LIMITED
    if any(r.assessment == MobilityAssessment.EXCESSIVE for r in results):
        return MobilityAssessment.EXCESSIVE
    return MobilityAssessment.NORMAL


def compare_rom_to_baseline(current: SessionROMSummary, baseline: SessionROMSummary) -> List[ROMChange]:
    """Change in achieved range per (joint, side) present in both sessions."""
    previous = {(j.joint, j.side): j for j in baseline.joints}
    changes = []
    for joint in current.joints:
        before = previous.get((joint.joint, joint.side))
        if before is None:
            continue
        change = joint.range_achieved - before.range_achieved
        changes.append(ROMChange(joint.joint, joint.side, round1(change), change > 0))
    return changes


class JointROMTracker:
    """
    Accumulates joint angle samples over a session and summarises mobility.

    Time is supplied by the caller; the tracker never reads a clock. In
    bilateral mode samples are kept per side, otherwise sides are pooled.
    """

    def __init__(self, exercise_type: str, joints: Sequence[str], bilateral: bool = False,
                 benchmarks: Optional[Mapping[str, ROMBenchmark]] = None):
        self.exercise_type = exercise_type
        self.benchmarks = dict(benchmarks if benchmarks is not None else ROM_BENCHMARKS)
        self.joints = [resolve_joint(j) for j in joints]
        for joint in self.joints:
            get_benchmark(joint, self.benchmarks)
        self.bilateral = bilateral
        self._samples: Dict[Tuple[str, Optional[str]], List[float]] = {}
        self._start_time = 0.0
        self._tracking = False

    @property
    def is_tracking(self) -> bool:
        return self._tracking

    def start(self, timestamp: float) -> None:
        self._start_time = timestamp
        self._samples.clear()
        self._tracking = True

    def record_angle(self, joint: str, angle: Optional[float], side: Optional[str] = None) -> bool:
        """Store one sample; returns False when it was rejected."""
        if not self._tracking or angle is None:
            return False
        if not np.isfinite(angle) or angle < 0 or angle > 360:
            logger.debug(f"Rejected ROM sample {angle} for {joint}")
            return False
        joint = resolve_joint(joint)
        if joint not in self.joints:
            return False
        key = (joint, side if self.bilateral else None)
        self._samples.setdefault(key, []).append(float(angle))
        return True

    def current_stats(self) -> List[Dict[str, Any]]:
        stats = []
        for (joint, side), samples in self._samples.items():
            stats.append({
                "joint": joint,
                "side": side,
                "min": round1(min(samples)),
                "max": round1(max(samples)),
                "current": round1(samples[-1]),
            })
        return stats

    def _joint_results(self) -> List[JointROMResult]:
        results = []
        for (joint, side), samples in self._samples.items():
            benchmark = self.benchmarks[joint]
            low, high = min(samples), max(samples)
            comparison = compare_to_benchmark(high - low, benchmark)
            results.append(JointROMResult(
                joint=joint,
                side=side,
                min_angle=round1(low),
                max_angle=round1(high),
                range_achieved=comparison.achieved_range,
                benchmark=benchmark,
                assessment=comparison.assessment,
                percent_of_normal=comparison.percent_of_benchmark,
                level=comparison.level,
                message=comparison.message,
            ))
        return results

    def summary(self, timestamp: float) -> Optional[SessionROMSummary]:
        """Summary up to ``timestamp`` without stopping; None when nothing was recorded."""
        if not self._tracking or not self._samples:
            return None
        results = self._joint_results()
        return SessionROMSummary(
            exercise_type=self.exercise_type,
            start_time=self._start_time,
            duration=round_half_up(timestamp - self._start_time),
            joints=results,
            overall_mobility=overall_mobility(results),
            recommendations=generate_recommendations(results),
        )

    def stop(self, timestamp: float) -> Optional[SessionROMSummary]:
        if not self._tracking:
            return None
        summary = self.summary(timestamp)
        self._tracking = False
        if summary is not None:
            logger.info(f"ROM session for {self.exercise_type}: overall mobility {summary.overall_mobility.value}")
        return summary


def create_rom_tracker(exercise_type: str, benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> JointROMTracker:
    entry = require(_ROM_CONFIG, "trackers", exercise_type)
    return JointROMTracker(exercise_type, require(entry, "joints"), bool(entry.get("bilateral", False)), benchmarks)


def create_squat_rom_tracker(benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> JointROMTracker:
    return create_rom_tracker("squat", benchmarks)


def create_lunge_rom_tracker(benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> JointROMTracker:
    return create_rom_tracker("lunge", benchmarks)


def create_deadlift_rom_tracker(benchmarks: Optional[Mapping[str, ROMBenchmark]] = None) -> JointROMTracker:
    return create_rom_tracker("deadlift", benchmarks)
