"""
Per-frame position signals. Single-sided measurements use whichever side the
camera sees best, so the user can face either direction.
"""
from __future__ import annotations

from typing import Callable, NamedTuple

from .exercises import Exercise
from .geometry import angle, asymmetry_pct, horizontal_spread, pick_visible_side, vertical_angle
from .pose import Frame, LandmarkIdx

# Both knees above this visibility: average the two legs.
BOTH_KNEES_VISIBILITY = 0.7
# Pre-calibration heuristics report a coarse binary progress.
HEURISTIC_EXTENDED_PCT = 0.0
HEURISTIC_CONTRACTED_PCT = 100.0
# Rear delt: wrists this far apart count as contracted before calibration.
REAR_DELT_SPREAD_CONTRACTED = 0.5
# Vertical pulls: wrist within this of hip height counts as contracted.
VERTICAL_PULL_HIP_MARGIN = 0.1

_LEFT_RIGHT = {
    "shoulder": (LandmarkIdx.LEFT_SHOULDER, LandmarkIdx.RIGHT_SHOULDER),
    "elbow": (LandmarkIdx.LEFT_ELBOW, LandmarkIdx.RIGHT_ELBOW),
    "wrist": (LandmarkIdx.LEFT_WRIST, LandmarkIdx.RIGHT_WRIST),
    "hip": (LandmarkIdx.LEFT_HIP, LandmarkIdx.RIGHT_HIP),
    "knee": (LandmarkIdx.LEFT_KNEE, LandmarkIdx.RIGHT_KNEE),
    "ankle": (LandmarkIdx.LEFT_ANKLE, LandmarkIdx.RIGHT_ANKLE),
    "ear": (LandmarkIdx.LEFT_EAR, LandmarkIdx.RIGHT_EAR),
    "heel": (LandmarkIdx.LEFT_HEEL, LandmarkIdx.RIGHT_HEEL),
    "foot": (LandmarkIdx.LEFT_FOOT_INDEX, LandmarkIdx.RIGHT_FOOT_INDEX),
}


def visible_side(frame: Frame, part: str = "shoulder") -> str:
    """'left' or 'right', decided by the visibility of the given body part."""
    left, right = _LEFT_RIGHT[part]
    return "left" if pick_visible_side(frame, left, right) == left else "right"


def side_idx(side: str, part: str) -> int:
    left, right = _LEFT_RIGHT[part]
    return left if side == "left" else right


def knee_angle(frame: Frame) -> float:
    """Hip-knee-ankle angle; both legs averaged when both knees are clearly visible."""
    left = angle(
        frame[LandmarkIdx.LEFT_HIP], frame[LandmarkIdx.LEFT_KNEE], frame[LandmarkIdx.LEFT_ANKLE]
    )
    right = angle(
        frame[LandmarkIdx.RIGHT_HIP], frame[LandmarkIdx.RIGHT_KNEE], frame[LandmarkIdx.RIGHT_ANKLE]
    )
    left_vis = frame[LandmarkIdx.LEFT_KNEE].visibility
    right_vis = frame[LandmarkIdx.RIGHT_KNEE].visibility
    if left_vis > BOTH_KNEES_VISIBILITY and right_vis > BOTH_KNEES_VISIBILITY:
        return (left + right) / 2.0
    return left if visible_side(frame, "knee") == "left" else right


def torso_angle(frame: Frame) -> float:
    """Torso tilt from vertical; shoulder and hip from the same side."""
    side = visible_side(frame, "shoulder")
    return vertical_angle(frame[side_idx(side, "shoulder")], frame[side_idx(side, "hip")])


def elbow_x(frame: Frame) -> float:
    """Elbow on the shoulder-visible side, the same side _row_heuristic compares against."""
    return frame[side_idx(visible_side(frame, "shoulder"), "elbow")].x


def wrist_y(frame: Frame) -> float:
    """Smaller is higher on screen."""
    return frame[side_idx(visible_side(frame, "wrist"), "wrist")].y


def wrist_spread(frame: Frame) -> float:
    return horizontal_spread(frame[LandmarkIdx.LEFT_WRIST], frame[LandmarkIdx.RIGHT_WRIST])


def elbow_angle(frame: Frame) -> float:
    side = visible_side(frame, "elbow")
    return angle(
        frame[side_idx(side, "shoulder")],
        frame[side_idx(side, "elbow")],
        frame[side_idx(side, "wrist")],
    )


def wrist_asymmetry(frame: Frame) -> float:
    """Wrist height difference as % of the left shoulder-hip height."""
    body_height = abs(frame[LandmarkIdx.LEFT_HIP].y - frame[LandmarkIdx.LEFT_SHOULDER].y)
    return asymmetry_pct(frame[LandmarkIdx.LEFT_WRIST], frame[LandmarkIdx.RIGHT_WRIST], body_height)


def shoulder_ear_gap(frame: Frame) -> float:
    """Vertical shoulder-to-ear distance on the visible side; shrinks when shrugging."""
    side = visible_side(frame, "shoulder")
    return frame[side_idx(side, "shoulder")].y - frame[side_idx(side, "ear")].y


def facing_sign(frame: Frame, side: str) -> float:
    """+1 when the toes point toward +x, -1 toward -x (heel -> foot index)."""
    dx = frame[side_idx(side, "foot")].x - frame[side_idx(side, "heel")].x
    if abs(dx) < 1e-6:
        return -1.0
    return 1.0 if dx > 0 else -1.0


def _row_heuristic(frame: Frame, position: float) -> float:
    """Elbow drawn behind the shoulder; 'behind' is away from the nose."""
    shoulder = frame[side_idx(visible_side(frame, "shoulder"), "shoulder")]
    forward = frame[LandmarkIdx.NOSE].x - shoulder.x
    if abs(forward) < 1e-6:
        behind = position < shoulder.x
    else:
        behind = (position - shoulder.x) * forward < 0
    return HEURISTIC_CONTRACTED_PCT if behind else HEURISTIC_EXTENDED_PCT


def _spread_heuristic(frame: Frame, position: float) -> float:
    if position > REAR_DELT_SPREAD_CONTRACTED:
        return HEURISTIC_CONTRACTED_PCT
    return HEURISTIC_EXTENDED_PCT


def _vertical_heuristic(frame: Frame, position: float) -> float:
    hip_y = frame[side_idx(visible_side(frame, "hip"), "hip")].y
    if position > hip_y - VERTICAL_PULL_HIP_MARGIN:
        return HEURISTIC_CONTRACTED_PCT
    return HEURISTIC_EXTENDED_PCT


class PullingSignal(NamedTuple):
    raw: Callable[[Frame], float]
    heuristic: Callable[[Frame, float], float]


PULLING_SIGNALS: dict[Exercise, PullingSignal] = {
    Exercise.SEATED_ROW: PullingSignal(elbow_x, _row_heuristic),
    Exercise.REAR_DELT: PullingSignal(wrist_spread, _spread_heuristic),
    Exercise.LAT_PULLDOWN: PullingSignal(wrist_y, _vertical_heuristic),
    Exercise.STRAIGHT_ARM: PullingSignal(wrist_y, _vertical_heuristic),
}
