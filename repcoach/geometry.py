"""
Geometry kernel: stateless angle/distance/ROM helpers over normalized landmarks.
All functions are total; degenerate geometry returns a neutral value.
"""
from __future__ import annotations

import math
from collections import deque
from typing import Sequence

import numpy as np

from .pose import Frame, Landmark


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def average(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def angle(a: Landmark, b: Landmark, c: Landmark) -> float:
    """
    Angle at vertex b between rays b->a and b->c, in degrees [0, 180].
    Reflex angles fold back (360 - angle).
    """
    radians = math.atan2(c.y - b.y, c.x - b.x) - math.atan2(a.y - b.y, a.x - b.x)
    deg = abs(math.degrees(radians))
    if deg > 180.0:
        deg = 360.0 - deg
    return deg


def distance(a: Landmark, b: Landmark) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def vertical_angle(top: Landmark, bottom: Landmark) -> float:
    """Signed deviation of top->bottom from true vertical. 0 = upright."""
    dx = bottom.x - top.x
    dy = bottom.y - top.y
    return math.degrees(math.atan2(dx, dy))


def horizontal_spread(a: Landmark, b: Landmark) -> float:
    return abs(a.x - b.x)


def asymmetry_pct(left: Landmark, right: Landmark, body_height: float) -> float:
    """Left/right height difference as % of body_height (0 if body_height is 0)."""
    if body_height == 0:
        return 0.0
    return abs(left.y - right.y) / body_height * 100.0


def avg_visibility(frame: Frame, indices: Sequence[int]) -> float:
    if len(indices) == 0:
        return 0.0
    total = 0.0
    for idx in indices:
        lm = frame[idx] if idx < len(frame) else None
        total += lm.visibility if lm is not None else 0.0
    return total / len(indices)


def rom_pct(current: float, extended: float, contracted: float) -> float:
    """Progress from extended toward contracted, clamped to [0, 100]."""
    total = abs(contracted - extended)
    if total == 0:
        return 0.0
    return clamp(abs(current - extended) / total * 100.0, 0.0, 100.0)


def smooth(history: deque, value: float, window: int) -> float:
    """Push value, trim history to window, return the moving average."""
    history.append(value)
    while len(history) > window:
        history.popleft()
    return float(np.mean(history))


def pick_visible_side(frame: Frame, left_idx: int, right_idx: int) -> int:
    """Index of the more visible landmark of a left/right pair (left wins ties)."""
    left = frame[left_idx] if left_idx < len(frame) else None
    right = frame[right_idx] if right_idx < len(frame) else None
    left_vis = left.visibility if left is not None else 0.0
    right_vis = right.visibility if right is not None else 0.0
    return left_idx if left_vis >= right_vis else right_idx
