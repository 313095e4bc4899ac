"""
Synthetic BlazePose frames for the analyzer tests.

Front-facing poses use the mirrored (selfie) layout: the subject's left side
sits at the smaller image x.
"""
import math

import pytest

from motion_core.pose_detection.landmarks import NUM_LANDMARKS, BlazePoseLandmark as LM, Landmark3D, Pose3D

LEFT_X = 0.43
RIGHT_X = 0.57
FLOOR_Y = 0.9
SHIN = 0.18
THIGH = 0.17
TORSO = 0.25


def build_pose(coords, confidence=0.9):
    """Pose3D from ``{landmark: (x, y[, z])}``; unlisted landmarks are missing."""
    landmarks = [None] * NUM_LANDMARKS
    for index, c in coords.items():
        conf = confidence[index] if isinstance(confidence, dict) else confidence
        landmarks[index] = Landmark3D(c[0], c[1], c[2] if len(c) > 2 else 0.0, conf)
    return Pose3D(landmarks)


def squat_coords(knee_angle=180.0, knee_shift=0.0, heel_lift=0.0):
    """
    Front view of a squat at the given knee angle.

    Shin and thigh tilt in depth only, so the frontal plane stays aligned.
    ``knee_shift`` moves both knees towards the midline; ``heel_lift`` raises the heels.
    """
    flexion = 180.0 - knee_angle
    shin_tilt = math.radians(0.35 * flexion)
    thigh_tilt = math.radians(0.65 * flexion)
    lean = thigh_tilt / 2

    coords = {}
    for side, x, inward in (("left", LEFT_X, 1.0), ("right", RIGHT_X, -1.0)):
        ankle = (x, FLOOR_Y, 0.0)
        knee = (x + inward * knee_shift, FLOOR_Y - SHIN * math.cos(shin_tilt), -SHIN * math.sin(shin_tilt))
        hip = (x, knee[1] - THIGH * math.cos(thigh_tilt), knee[2] + THIGH * math.sin(thigh_tilt))
        shoulder = (x, hip[1] - TORSO * math.cos(lean), hip[2] - TORSO * math.sin(lean))
        outward = -inward
        coords.update({
            LM.side(side, "ankle"): ankle,
            LM.side(side, "heel"): (x, FLOOR_Y - heel_lift, 0.03),
            LM.side(side, "foot_index"): (x, FLOOR_Y, -0.1),
            LM.side(side, "knee"): knee,
            LM.side(side, "hip"): hip,
            LM.side(side, "shoulder"): shoulder,
            LM.side(side, "elbow"): (x + outward * 0.02, shoulder[1] + 0.14, shoulder[2]),
            LM.side(side, "wrist"): (x + outward * 0.02, shoulder[1] + 0.27, shoulder[2]),
            LM.side(side, "ear"): (x - outward * 0.04, shoulder[1] - 0.1, shoulder[2]),
        })
    coords[LM.NOSE] = (0.5, coords[LM.LEFT_EAR][1], coords[LM.LEFT_EAR][2] - 0.03)
    return coords


def pushup_coords(elbow_angle=170.0, hip_drop=0.0):
    """
    Side view of a push-up. Hands stay under the shoulders; ``hip_drop`` moves
    the hips down (positive, sag) or up (negative, pike) in the image.
    """
    arm = 0.12
    floor = 0.8
    half = math.radians(elbow_angle) / 2
    reach = 2 * arm * math.sin(half)
    shoulder_y = floor - reach
    ankle_y = floor - 0.03

    coords = {}
    for side, z in (("left", -0.05), ("right", 0.05)):
        hip_y = shoulder_y + (ankle_y - shoulder_y) * 0.5 + hip_drop
        coords.update({
            LM.side(side, "shoulder"): (0.3, shoulder_y, z),
            LM.side(side, "elbow"): (0.3 + arm * math.cos(half), floor - reach / 2, z),
            LM.side(side, "wrist"): (0.3, floor, z),
            LM.side(side, "hip"): (0.6, hip_y, z),
            LM.side(side, "knee"): (0.75, (hip_y + ankle_y) / 2, z),
            LM.side(side, "ankle"): (0.9, ankle_y, z),
            LM.side(side, "ear"): (0.24, shoulder_y - 0.02, z),
        })
    return coords


def lunge_coords(knee_angle=90.0, torso_lean=0.0, toe_reach=0.01):
    """
    Side view of a lunge, subject facing +x with the left leg in front.

    The front shin stays vertical and both knees bend to ``knee_angle``; the
    back thigh hangs straight down. ``torso_lean`` tilts the torso forward
    (degrees) and ``toe_reach`` sets how far the front toes sit ahead of the ankle.
    """
    flexion = math.radians(180.0 - knee_angle)
    lean = math.radians(torso_lean)
    front_ankle = (0.6, FLOOR_Y)
    front_knee = (0.6, FLOOR_Y - SHIN)
    hip = (front_knee[0] - THIGH * math.sin(flexion), front_knee[1] - THIGH * math.cos(flexion))
    back_knee = (hip[0], hip[1] + THIGH)
    back_ankle = (back_knee[0] - SHIN * math.sin(flexion), back_knee[1] + SHIN * math.cos(flexion))
    shoulder = (hip[0] + TORSO * math.sin(lean), hip[1] - TORSO * math.cos(lean))
    ear = (shoulder[0] + 0.1 * math.sin(lean), shoulder[1] - 0.1 * math.cos(lean))

    coords = {}
    for side, z in (("left", -0.05), ("right", 0.05)):
        coords.update({
            LM.side(side, "shoulder"): (shoulder[0], shoulder[1], z),
            LM.side(side, "hip"): (hip[0], hip[1], z),
            LM.side(side, "ear"): (ear[0], ear[1], z),
        })
    coords.update({
        LM.LEFT_KNEE: (*front_knee, -0.05),
        LM.LEFT_ANKLE: (*front_ankle, -0.05),
        LM.LEFT_HEEL: (front_ankle[0] - 0.05, FLOOR_Y, -0.05),
        LM.LEFT_FOOT_INDEX: (front_ankle[0] + toe_reach, FLOOR_Y, -0.05),
        LM.RIGHT_KNEE: (*back_knee, 0.05),
        LM.RIGHT_ANKLE: (*back_ankle, 0.05),
        LM.RIGHT_HEEL: (back_ankle[0] - 0.05, back_ankle[1], 0.05),
        LM.RIGHT_FOOT_INDEX: (back_ankle[0] + 0.01, back_ankle[1] + 0.01, 0.05),
        LM.NOSE: (ear[0] + 0.03 * math.cos(lean), ear[1] + 0.03 * math.sin(lean), 0.0),
    })
    return coords


def deadlift_coords(hip_angle=180.0, knee_angle=180.0, bar_offset=0.0, head_forward=0.0):
    """
    Side view of a deadlift, subject facing +x.

    The knee bend splits 1:2 between shin and thigh tilt, and the torso takes
    the rest of the hip angle. Wrists sit ``bar_offset`` ahead of the ankles;
    ``head_forward`` pushes the ears off the torso line towards the chest.
    """
    bend = 180.0 - knee_angle
    shin = math.radians(bend / 3)
    thigh = math.radians(bend - bend / 3)
    torso = math.radians(180.0 - hip_angle) - thigh
    ankle = (0.5, FLOOR_Y)
    knee = (ankle[0] + SHIN * math.sin(shin), ankle[1] - SHIN * math.cos(shin))
    hip = (knee[0] - THIGH * math.sin(thigh), knee[1] - THIGH * math.cos(thigh))
    shoulder = (hip[0] + TORSO * math.sin(torso), hip[1] - TORSO * math.cos(torso))
    chest = (math.cos(torso), math.sin(torso))
    ear = (shoulder[0] + 0.1 * math.sin(torso) + head_forward * chest[0],
           shoulder[1] - 0.1 * math.cos(torso) + head_forward * chest[1])

    coords = {}
    for side, z in (("left", -0.05), ("right", 0.05)):
        coords.update({
            LM.side(side, "ankle"): (ankle[0], ankle[1], z),
            LM.side(side, "heel"): (ankle[0] - 0.03, FLOOR_Y, z),
            LM.side(side, "foot_index"): (ankle[0] + 0.1, FLOOR_Y, z),
            LM.side(side, "knee"): (knee[0], knee[1], z),
            LM.side(side, "hip"): (hip[0], hip[1], z),
            LM.side(side, "shoulder"): (shoulder[0], shoulder[1], z),
            LM.side(side, "wrist"): (ankle[0] + bar_offset, shoulder[1] + 0.2, z),
            LM.side(side, "ear"): (ear[0], ear[1], z),
        })
    coords[LM.NOSE] = (ear[0] + 0.03 * chest[0], ear[1] + 0.03 * chest[1], 0.0)
    return coords


def side_posture_coords(ear_forward=0.0):
    """Upright standing subject seen from their left side."""
    return {
        LM.LEFT_EAR: (0.5 - ear_forward, 0.15, 0.0),
        LM.RIGHT_EAR: (0.5 - ear_forward, 0.15, 0.05),
        LM.LEFT_SHOULDER: (0.5, 0.3, 0.0),
        LM.RIGHT_SHOULDER: (0.5, 0.3, 0.05),
        LM.LEFT_HIP: (0.5, 0.55, 0.0),
        LM.RIGHT_HIP: (0.5, 0.55, 0.05),
        LM.LEFT_KNEE: (0.5, 0.72, 0.0),
        LM.RIGHT_KNEE: (0.5, 0.72, 0.05),
        LM.LEFT_ANKLE: (0.5, 0.9, 0.0),
        LM.RIGHT_ANKLE: (0.5, 0.9, 0.05),
    }


def detection_pose(t, sweep=30.0):
    """
    Horizontal body whose 2D hip and knee angles open from 180 to 180 - ``sweep``
    degrees as ``t`` goes from 0 to 1, while the hips drift down by 0.05.
    """
    a = math.radians(sweep * t)
    dy = 0.05 * t
    hip = (0.5, 0.6 + dy)
    knee = (0.7, 0.6 + dy)
    shoulder = (hip[0] - 0.2 * math.cos(a), hip[1] - 0.2 * math.sin(a))
    ankle = (knee[0] + 0.2 * math.cos(a), knee[1] + 0.2 * math.sin(a))
    coords = {}
    for side in ("left", "right"):
        coords.update({
            LM.side(side, "shoulder"): shoulder,
            LM.side(side, "elbow"): (shoulder[0], shoulder[1] + 0.1),
            LM.side(side, "wrist"): (shoulder[0] + 0.05, shoulder[1] + 0.2),
            LM.side(side, "hip"): hip,
            LM.side(side, "knee"): knee,
            LM.side(side, "ankle"): ankle,
        })
    return build_pose(coords)


# Knee angles of one squat, with jitter around the standing, bottom and return thresholds.
SQUAT_REP_ANGLES = [175, 175, 174, 176, 165, 158, 156, 157, 150, 140, 130, 120, 110, 100, 90, 92, 91, 95,
                    100, 110, 120, 130, 140, 150, 158, 157, 159, 162, 170, 175, 158, 161, 157, 174]

# Elbow angles of one push-up.
PUSHUP_REP_ANGLES = [170, 170, 168, 160, 150, 146, 148, 140, 130, 120, 110, 100, 92, 90, 91, 93, 97, 105,
                     115, 125, 135, 145, 152, 154, 156, 165, 170, 168]


@pytest.fixture
def squat_pose():
    def make(knee_angle=180.0, **kwargs):
        return build_pose(squat_coords(knee_angle, **kwargs))
    return make


@pytest.fixture
def standing_pose(squat_pose):
    return squat_pose(180.0)


@pytest.fixture
def pushup_pose():
    def make(elbow_angle=170.0, **kwargs):
        return build_pose(pushup_coords(elbow_angle, **kwargs))
    return make


@pytest.fixture
def detection_frames():
    return [detection_pose(i / 29) for i in range(30)]
