from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

NUM_LANDMARKS = 33


class BlazePoseLandmark(IntEnum):
    """Fixed index layout of the 33-point BlazePose skeleton."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

    @classmethod
    def side(cls, side: str, part: str) -> "BlazePoseLandmark":
        """Look up a sided landmark, e.g. ``side("left", "knee")``."""
        return cls[f"{side.upper()}_{part.upper()}"]


@dataclass(frozen=True)
class Landmark3D:
    """One landmark as produced by the pose estimator."""
    x: float
    y: float
    z: float = 0.0
    confidence: Optional[float] = None  # None is treated as 0 by validity checks


class Pose3D:
    """Immutable set of exactly 33 optional landmarks, indexed by BlazePoseLandmark."""

    __slots__ = ("_landmarks",)

    def __init__(self, landmarks: Sequence[Optional[Landmark3D]]):
        landmarks = tuple(landmarks)
        if len(landmarks) != NUM_LANDMARKS:
            raise ValueError(f"A pose needs exactly {NUM_LANDMARKS} landmarks, got {len(landmarks)}")
        self._landmarks: Tuple[Optional[Landmark3D], ...] = landmarks

    def __getitem__(self, index: BlazePoseLandmark) -> Optional[Landmark3D]:
        return self._landmarks[BlazePoseLandmark(index)]

    def __iter__(self) -> Iterator[Optional[Landmark3D]]:
        return iter(self._landmarks)

    def __len__(self) -> int:
        return NUM_LANDMARKS

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Pose3D) and self._landmarks == other._landmarks

    def __hash__(self) -> int:
        return hash(self._landmarks)

    def __repr__(self) -> str:
        present = sum(1 for lm in self._landmarks if lm is not None)
        return f"Pose3D({present}/{NUM_LANDMARKS} landmarks)"

    @property
    def landmarks(self) -> Tuple[Optional[Landmark3D], ...]:
        return self._landmarks

    def replace(self, updates: Dict[BlazePoseLandmark, Optional[Landmark3D]]) -> "Pose3D":
        """Return a copy with some landmarks substituted."""
        landmarks = list(self._landmarks)
        for index, landmark in updates.items():
            landmarks[BlazePoseLandmark(index)] = landmark
        return Pose3D(landmarks)

    @classmethod
    def from_array(cls, array) -> "Pose3D":
        """
        Build a pose from a (33, 3) or (33, 4) array of x, y, z[, confidence].

        Rows containing NaN become missing landmarks.
        """
        data = np.asarray(array, dtype=float)
        if data.ndim != 2 or data.shape[0] != NUM_LANDMARKS or data.shape[1] not in (3, 4):
            raise ValueError(f"Expected an array of shape (33, 3) or (33, 4), got {data.shape}")
        landmarks: List[Optional[Landmark3D]] = []
        for row in data:
            if np.isnan(row[:3]).any():
                landmarks.append(None)
                continue
            confidence = float(row[3]) if data.shape[1] == 4 and not np.isnan(row[3]) else None
            landmarks.append(Landmark3D(float(row[0]), float(row[1]), float(row[2]), confidence))
        return cls(landmarks)

    @classmethod
    def from_landmark_dict(cls, landmarks: Dict[str, Sequence[float]]) -> "Pose3D":
        """
        Build a pose from a MediaPipe-style dict (``{"left_knee": [x, y, z, visibility]}``).

        Names that are not present become missing landmarks.
        """
        values: List[Optional[Landmark3D]] = [None] * NUM_LANDMARKS
        for name, coords in landmarks.items():
            try:
                index = BlazePoseLandmark[name.upper()]
            except KeyError:
                raise ValueError(f"Unknown landmark name: {name}") from None
            confidence = float(coords[3]) if len(coords) > 3 else None
            z = float(coords[2]) if len(coords) > 2 else 0.0
            values[index] = Landmark3D(float(coords[0]), float(coords[1]), z, confidence)
        return cls(values)

    def to_array(self) -> np.ndarray:
        """Return a (33, 4) array; missing landmarks are NaN rows, missing confidence is 0."""
        out = np.full((NUM_LANDMARKS, 4), np.nan)
        for i, lm in enumerate(self._landmarks):
            if lm is not None:
                out[i] = (lm.x, lm.y, lm.z, lm.confidence or 0.0)
        return out

