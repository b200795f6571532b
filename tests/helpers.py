"""Synthetic landmark builders shared by the test modules.

Frames use the mirrored (selfie) convention: the subject's left side is on
the left of the image. Image y grows downward.
"""

import math
from typing import Optional

from repcoach.pose import NUM_LANDMARKS, Frame, Landmark, LandmarkIdx

L = LandmarkIdx

# Neutral standing pose, arms hanging by the sides.
NEUTRAL = {
    L.NOSE: (0.50, 0.15),
    L.LEFT_EYE_INNER: (0.49, 0.14),
    L.LEFT_EYE: (0.48, 0.14),
    L.LEFT_EYE_OUTER: (0.47, 0.14),
    L.RIGHT_EYE_INNER: (0.51, 0.14),
    L.RIGHT_EYE: (0.52, 0.14),
    L.RIGHT_EYE_OUTER: (0.53, 0.14),
    L.LEFT_EAR: (0.46, 0.17),
    L.RIGHT_EAR: (0.54, 0.17),
    L.MOUTH_LEFT: (0.49, 0.19),
    L.MOUTH_RIGHT: (0.51, 0.19),
    L.LEFT_SHOULDER: (0.42, 0.27),
    L.RIGHT_SHOULDER: (0.58, 0.27),
    L.LEFT_ELBOW: (0.40, 0.40),
    L.RIGHT_ELBOW: (0.60, 0.40),
    L.LEFT_WRIST: (0.40, 0.52),
    L.RIGHT_WRIST: (0.60, 0.52),
    L.LEFT_PINKY: (0.40, 0.54),
    L.RIGHT_PINKY: (0.60, 0.54),
    L.LEFT_INDEX: (0.40, 0.55),
    L.RIGHT_INDEX: (0.60, 0.55),
    L.LEFT_THUMB: (0.41, 0.54),
    L.RIGHT_THUMB: (0.59, 0.54),
    L.LEFT_HIP: (0.44, 0.52),
    L.RIGHT_HIP: (0.56, 0.52),
    L.LEFT_KNEE: (0.44, 0.70),
    L.RIGHT_KNEE: (0.56, 0.70),
    L.LEFT_ANKLE: (0.44, 0.88),
    L.RIGHT_ANKLE: (0.56, 0.88),
    L.LEFT_HEEL: (0.44, 0.90),
    L.RIGHT_HEEL: (0.56, 0.90),
    L.LEFT_FOOT_INDEX: (0.44, 0.92),
    L.RIGHT_FOOT_INDEX: (0.56, 0.92),
}

SEGMENT = 0.2
TORSO = 0.25
MS_PER_FRAME = 50.0  # 20 Hz


def lm(x: float, y: float, visibility: float = 1.0, presence: float = 1.0) -> Landmark:
    return Landmark(x=x, y=y, z=0.0, visibility=visibility, presence=presence)


def build_frame(
    points: Optional[dict] = None,
    visibility: float = 1.0,
    overrides: Optional[dict] = None,
) -> Frame:
    """Neutral pose with `points` {idx: (x, y)} replaced and `overrides` {idx: Landmark} applied last."""
    coords = dict(NEUTRAL)
    if points:
        coords.update(points)
    frame = [lm(*coords[i], visibility=visibility) for i in range(NUM_LANDMARKS)]
    for idx, landmark in (overrides or {}).items():
        frame[idx] = landmark
    return tuple(frame)


def _rotate(v: tuple, deg: float) -> tuple:
    r = math.radians(deg)
    return (v[0] * math.cos(r) - v[1] * math.sin(r), v[0] * math.sin(r) + v[1] * math.cos(r))


def squat_frame(
    knee_deg: float,
    tilt: float = 0.0,
    visibility: float = 1.0,
    hip_presence: float = 1.0,
) -> Frame:
    """
    Front-view squat with both knee angles exactly `knee_deg`.
    `tilt` (rad) leans the shanks; negative values push both knees toward
    the midline (valgus).
    """
    points = {}
    legs = (
        (L.LEFT_HIP, L.LEFT_KNEE, L.LEFT_ANKLE, L.LEFT_SHOULDER, L.LEFT_EAR, 0.44, tilt, 1.0),
        (L.RIGHT_HIP, L.RIGHT_KNEE, L.RIGHT_ANKLE, L.RIGHT_SHOULDER, L.RIGHT_EAR, 0.56, -tilt, -1.0),
    )
    for hip, knee, ankle, shoulder, ear, kx, t, sign in legs:
        knee_pt = (kx, 0.70)
        shank = (math.sin(t), math.cos(t))
        thigh = _rotate(shank, sign * knee_deg)
        hip_pt = (knee_pt[0] + SEGMENT * thigh[0], knee_pt[1] + SEGMENT * thigh[1])
        points[knee] = knee_pt
        points[ankle] = (knee_pt[0] + SEGMENT * shank[0], knee_pt[1] + SEGMENT * shank[1])
        points[hip] = hip_pt
        points[shoulder] = (hip_pt[0], hip_pt[1] - TORSO)
        points[ear] = (hip_pt[0] - sign * 0.02, hip_pt[1] - TORSO - 0.10)
    frame = list(build_frame(points, visibility=visibility))
    hip = frame[L.LEFT_HIP]
    frame[L.LEFT_HIP] = lm(hip.x, hip.y, hip.visibility, presence=hip_presence)
    return tuple(frame)


def sweep(low: float, high: float, frames: int) -> list[float]:
    """One cosine cycle high -> low -> high over `frames` samples."""
    mid = (high + low) / 2.0
    amp = (high - low) / 2.0
    return [mid + amp * math.cos(2 * math.pi * k / frames) for k in range(frames)]


def squat_sequence(
    reps: int = 5,
    bottom_deg: float = 90.0,
    frames_per_rep: int = 40,
    standing_frames: int = 10,
    **frame_kwargs,
) -> list[tuple[Frame, float]]:
    """Standing lead-in, `reps` cycles 180 -> bottom -> 180, standing tail; 20 Hz timestamps."""
    angles = [180.0] * standing_frames
    for _ in range(reps):
        angles += sweep(bottom_deg, 180.0, frames_per_rep)
    angles += [180.0] * standing_frames
    return [(squat_frame(a, **frame_kwargs), i * MS_PER_FRAME) for i, a in enumerate(angles)]


def _side_view(points: dict, visibility: float = 1.0) -> Frame:
    """Left side toward the camera; the far arm and hip partly hidden."""
    frame = list(build_frame(points, visibility=visibility))
    for idx in (L.RIGHT_SHOULDER, L.RIGHT_ELBOW, L.RIGHT_WRIST, L.RIGHT_HIP):
        p = frame[idx]
        frame[idx] = lm(p.x, p.y, visibility=min(visibility, 0.6))
    return tuple(frame)


def pulldown_frame(progress: float, visibility: float = 1.0, lean_deg: float = 0.0) -> Frame:
    """
    Side-view lat pulldown.
    progress 0 = arms overhead, 1 = bar at the upper chest (wrist just above the hip).
    `lean_deg` leans the torso back by that much at full progress.
    """
    wrist_y = 0.10 + 0.37 * progress
    shoulder = NEUTRAL[L.LEFT_SHOULDER]
    hip = NEUTRAL[L.LEFT_HIP]
    elbow = (shoulder[0] - 0.08, (shoulder[1] + wrist_y) / 2.0)
    points = {
        L.LEFT_WRIST: (0.40, wrist_y),
        L.RIGHT_WRIST: (0.40, wrist_y),
        L.LEFT_ELBOW: elbow,
        L.RIGHT_ELBOW: elbow,
    }
    if lean_deg:
        lean = math.radians(lean_deg * progress)
        points[L.LEFT_SHOULDER] = (hip[0] - TORSO * math.tan(lean), shoulder[1])
    return _side_view(points, visibility)


def row_frame(progress: float) -> Frame:
    """
    Side-view seated row facing +x (nose ahead of the shoulder).
    progress 0 = arms reaching forward, 1 = elbows drawn well behind the shoulder.
    """
    elbow_x = 0.52 - 0.22 * progress
    points = {L.NOSE: (0.55, 0.15)}
    for elbow, wrist in ((L.LEFT_ELBOW, L.LEFT_WRIST), (L.RIGHT_ELBOW, L.RIGHT_WRIST)):
        points[elbow] = (elbow_x, 0.40)
        points[wrist] = (elbow_x + 0.08, 0.40)
    return _side_view(points)


def rear_delt_frame(progress: float, right_drop: float = 0.0) -> Frame:
    """
    Front-view rear delt fly with arms at chest height.
    progress 0 = hands together, 1 = arms spread wide. `right_drop` lowers the right wrist.
    """
    left_wrist = (0.45 - 0.30 * progress, 0.35)
    right_wrist = (0.55 + 0.30 * progress, 0.35 + right_drop)
    ls, rs = NEUTRAL[L.LEFT_SHOULDER], NEUTRAL[L.RIGHT_SHOULDER]
    return build_frame(
        {
            L.LEFT_WRIST: left_wrist,
            L.RIGHT_WRIST: right_wrist,
            L.LEFT_ELBOW: ((ls[0] + left_wrist[0]) / 2.0, (ls[1] + left_wrist[1]) / 2.0),
            L.RIGHT_ELBOW: ((rs[0] + right_wrist[0]) / 2.0, (rs[1] + right_wrist[1]) / 2.0),
        }
    )


ARM = 0.25


def straight_arm_frame(progress: float, elbow_deg: float = 180.0) -> Frame:
    """
    Side-view straight-arm pulldown. The arm swings from 30 deg off vertical-up
    (progress 0) to 160 deg (progress 1, hands past the hips). Both elbows
    hold `elbow_deg`.
    """
    phi = math.radians(30.0 + 130.0 * progress)
    up = (math.sin(phi), -math.cos(phi))
    normal = (math.cos(phi), math.sin(phi))
    bend = 0.0 if elbow_deg >= 180.0 else (ARM / 2.0) / math.tan(math.radians(elbow_deg) / 2.0)
    sx, sy = NEUTRAL[L.LEFT_SHOULDER]
    wrist = (sx + ARM * up[0], sy + ARM * up[1])
    elbow = (sx + ARM / 2.0 * up[0] + bend * normal[0], sy + ARM / 2.0 * up[1] + bend * normal[1])
    points = {L.LEFT_WRIST: wrist, L.RIGHT_WRIST: wrist, L.LEFT_ELBOW: elbow, L.RIGHT_ELBOW: elbow}
    return _side_view(points)


def pulling_sequence(
    builder=None,
    reps: int = 5,
    frames_per_rep: int = 40,
    lead_frames: int = 10,
    **frame_kwargs,
) -> list[tuple[Frame, float]]:
    """Start position, `reps` cycles 0 -> 1 -> 0 of `builder`, start position again; 20 Hz timestamps."""
    builder = builder or pulldown_frame
    progress = [0.0] * lead_frames
    for _ in range(reps):
        progress += [1.0 - s for s in sweep(0.0, 1.0, frames_per_rep)]
    progress += [0.0] * lead_frames
    return [(builder(p, **frame_kwargs), i * MS_PER_FRAME) for i, p in enumerate(progress)]


def pulldown_sequence(reps: int = 5, frames_per_rep: int = 40, lead_frames: int = 10) -> list[tuple[Frame, float]]:
    return pulling_sequence(pulldown_frame, reps, frames_per_rep, lead_frames)
