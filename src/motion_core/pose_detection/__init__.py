"""
BlazePose landmark layout and immutable per-frame pose containers.
"""

from .landmarks import NUM_LANDMARKS, BlazePoseLandmark, Landmark3D, Pose3D

__all__ = ['NUM_LANDMARKS', 'BlazePoseLandmark', 'Landmark3D', 'Pose3D']
