"""
pose_utils.py - Geometry kernel shared by every analyzer: point conversion,
landmark validation, joint angles, plane projection and left/right symmetry.

All angles are in degrees. Image coordinates follow the pose estimator's
convention: x grows to the right, y grows downwards, z grows away from the camera.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from ..pose_detection.landmarks import BlazePoseLandmark, Landmark3D, Pose3D

DEGENERATE_ANGLE = 180.0
SYMMETRY_SCALE = 30.0  # degrees of left/right difference that bring the score to 0

_PLANES = {
    "xy": (0, 1),  # frontal
    "xz": (0, 2),  # transverse
    "yz": (1, 2),  # sagittal
}


@dataclass(frozen=True)
class Point3D:
    x: float
    y: float
    z: float = 0.0
    confidence: float = 0.0

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)


@dataclass(frozen=True)
class Point2D:
    x: float
    y: float

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=float)


AnyPoint = Union[Point3D, Point2D]


# --- Conversion & validation ---
def to_point(landmark: Landmark3D) -> Point3D:
    """Copy a landmark into a Point3D; a missing confidence becomes 0."""
    confidence = landmark.confidence if landmark.confidence is not None else 0.0
    return Point3D(float(landmark.x), float(landmark.y), float(landmark.z or 0.0), float(confidence))


def is_valid_landmark(landmark: Optional[Landmark3D], min_score: float = 0.5) -> bool:
    return landmark is not None and (landmark.confidence or 0.0) >= min_score


def get_valid_points(pose: Optional[Pose3D], indices: Sequence[BlazePoseLandmark],
                     min_score: float = 0.5) -> Optional[list]:
    """Return Point3Ds for ``indices`` or None if any of them is missing or below ``min_score``."""
    if pose is None:
        return None
    points = []
    for index in indices:
        landmark = pose[index]
        if not is_valid_landmark(landmark, min_score):
            return None
        points.append(to_point(landmark))
    return points


def round1(value: float) -> float:
    """Round half up to one decimal place."""
    return float(np.floor(value * 10 + 0.5) / 10)


def round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def _vec(point: AnyPoint) -> np.ndarray:
    return point.to_array()


# --- Angles ---
def angle_at(a: AnyPoint, vertex: AnyPoint, b: AnyPoint) -> float:
    """
    Angle in degrees at ``vertex`` between the rays towards ``a`` and ``b``.

    Returns 180 (fully extended) when either ray has zero length so that
    coincident landmarks never produce NaN.
    """
    va = _vec(a) - _vec(vertex)
    vb = _vec(b) - _vec(vertex)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return DEGENERATE_ANGLE
    cosine_angle = np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def angle_2d(a: AnyPoint, vertex: AnyPoint, b: AnyPoint) -> float:
    """Same as angle_at but ignoring depth."""
    return angle_at(Point2D(a.x, a.y), Point2D(vertex.x, vertex.y), Point2D(b.x, b.y))


def angle_with_vertical(start: Point3D, end: Point3D) -> float:
    """Angle between start→end and screen-up (0, -1, 0); 0 for a zero-length segment."""
    v = _vec(end) - _vec(start)
    mag = np.linalg.norm(v)
    if mag == 0:
        return 0.0
    cosine_angle = np.clip(np.dot(v, np.array([0.0, -1.0, 0.0])) / mag, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def angle_with_horizontal(start: Point3D, end: Point3D) -> float:
    """Signed angle between start→end and +x; negative when the segment points down."""
    v = _vec(end) - _vec(start)
    mag = np.linalg.norm(v)
    if mag == 0:
        return 0.0
    cosine_angle = np.clip(v[0] / mag, -1.0, 1.0)
    angle = float(np.degrees(np.arccos(cosine_angle)))
    return -angle if v[1] > 0 else angle


def angle_between_segments(p1: AnyPoint, p2: AnyPoint, p3: AnyPoint, p4: AnyPoint) -> float:
    """Angle between segment p1→p2 and segment p3→p4; 0 if either is degenerate."""
    v1 = _vec(p2) - _vec(p1)
    v2 = _vec(p4) - _vec(p3)
    mag1 = np.linalg.norm(v1)
    mag2 = np.linalg.norm(v2)
    if mag1 == 0 or mag2 == 0:
        return 0.0
    cosine_angle = np.clip(np.dot(v1, v2) / (mag1 * mag2), -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


# --- Distances & points ---
def project_to_plane(point: Point3D, plane: str = "xy") -> Point2D:
    """Drop one axis: ``xy`` (frontal), ``xz`` (transverse) or ``yz`` (sagittal)."""
    try:
        i, j = _PLANES[plane]
    except KeyError:
        raise ValueError(f"Unknown projection plane: {plane}") from None
    coords = point.to_array()
    return Point2D(float(coords[i]), float(coords[j]))


def drop_depth(point: Point3D) -> Point3D:
    """Frontal-plane copy of a point (z set to 0), kept as a Point3D for 3D helpers."""
    return Point3D(point.x, point.y, 0.0, point.confidence)


def midpoint(p1: Point3D, p2: Point3D) -> Point3D:
    return Point3D((p1.x + p2.x) / 2, (p1.y + p2.y) / 2, (p1.z + p2.z) / 2,
                   min(p1.confidence, p2.confidence))


def distance_2d(p1: AnyPoint, p2: AnyPoint) -> float:
    return float(np.hypot(p1.x - p2.x, p1.y - p2.y))


def distance_3d(p1: AnyPoint, p2: AnyPoint) -> float:
    return float(np.linalg.norm(_vec(p1) - _vec(p2)))


def point_to_line_distance(point: Point3D, line_start: Point3D, line_end: Point3D) -> float:
    """Perpendicular distance from ``point`` to the infinite line through start and end."""
    line = _vec(line_end) - _vec(line_start)
    line_mag = np.linalg.norm(line)
    if line_mag == 0:
        return distance_3d(point, line_start)
    cross = np.cross(line, _vec(point) - _vec(line_start))
    return float(np.linalg.norm(cross) / line_mag)


# --- Symmetry ---
def symmetry_score(left_angle: float, right_angle: float) -> int:
    """0-100 left/right similarity; 100 when equal, 0 at a 30 degree difference or more."""
    diff = abs(left_angle - right_angle)
    score = max(0.0, 100.0 - diff / SYMMETRY_SCALE * 100.0)
    return round_half_up(score)


def torso_rotation(left_shoulder: Point3D, right_shoulder: Point3D,
                   left_hip: Point3D, right_hip: Point3D) -> float:
    """Twist between the shoulder line and the hip line seen from above (transverse plane)."""
    ls, rs = project_to_plane(left_shoulder, "xz"), project_to_plane(right_shoulder, "xz")
    lh, rh = project_to_plane(left_hip, "xz"), project_to_plane(right_hip, "xz")
    if distance_2d(ls, rs) < 0.01 or distance_2d(lh, rh) < 0.01:
        return 0.0
    return round1(angle_between_segments(ls, rs, lh, rh))
