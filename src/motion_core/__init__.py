"""
motion_core: joint angles, rep phases, form scoring, symmetry and mobility
from 33-point BlazePose landmarks.
"""

from .exceptions import ConfigurationError, MotionCoreError
from .pose_detection import BlazePoseLandmark, Landmark3D, Pose3D
from .session import MotionAnalysisSession

__version__ = "0.1.0"

__all__ = [
    'BlazePoseLandmark',
    'ConfigurationError',
    'Landmark3D',
    'MotionAnalysisSession',
    'MotionCoreError',
    'Pose3D',
]
