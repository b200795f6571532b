"""
Hysteretic 4-state phase machines.

Squat is driven by the smoothed knee angle (deg), pulling by a ROM percentage.
Both cycles start and end in their first state; each machine owns its
smoothing window and only moves along the cycle edges below.

    squat:   STANDING -> DESCENDING -> BOTTOM -> ASCENDING -> STANDING
             (DESCENDING -> STANDING and ASCENDING -> DESCENDING on reversal)
    pulling: EXTENDED -> PULLING -> CONTRACTED -> RETURNING -> EXTENDED
             (PULLING -> EXTENDED and RETURNING -> CONTRACTED on reversal)
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from .geometry import smooth

# Moving-average window for position signals (frames).
SMOOTHING_WINDOW = 3
# Dead band around squat thresholds (deg).
HYSTERESIS_DEG = 5.0
# Frame-to-frame change that counts as moving up/down (deg).
TREND_DEG = 2.0
# Extra rise above the bottom band before ASCENDING (deg).
BOTTOM_EXIT_MARGIN_DEG = 10.0
# Previous smoothed knee angle assumed at session start.
INITIAL_KNEE_ANGLE = 180.0

# Pulling ROM thresholds (%).
PULL_START_PCT = 40.0
PULL_CONTRACTED_PCT = 80.0
PULL_EXTENDED_PCT = 30.0
PULL_RETURNING_PCT = 70.0


class SquatPhase(Enum):
    STANDING = "STANDING"
    DESCENDING = "DESCENDING"
    BOTTOM = "BOTTOM"
    ASCENDING = "ASCENDING"


class PullingPhase(Enum):
    EXTENDED = "EXTENDED"
    PULLING = "PULLING"
    CONTRACTED = "CONTRACTED"
    RETURNING = "RETURNING"


SQUAT_CYCLE = tuple(SquatPhase)
PULLING_CYCLE = tuple(PullingPhase)


@dataclass(frozen=True)
class SquatThresholds:
    standing: float = 160.0
    descending: float = 140.0
    bottom: float = 120.0

    @classmethod
    def from_range(cls, standing_angle: float, bottom_angle: float) -> "SquatThresholds":
        """Personalized thresholds placed inside the user's own standing/bottom range."""
        span = standing_angle - bottom_angle
        return cls(
            standing=standing_angle - span * 0.15,
            descending=standing_angle - span * 0.30,
            bottom=bottom_angle + span * 0.20,
        )


DEFAULT_SQUAT_THRESHOLDS = SquatThresholds()


class Transition(NamedTuple):
    previous: Enum
    current: Enum

    @property
    def changed(self) -> bool:
        return self.previous is not self.current


def next_squat_phase(
    signal: float,
    prev_signal: float,
    phase: SquatPhase,
    thresholds: SquatThresholds = DEFAULT_SQUAT_THRESHOLDS,
) -> SquatPhase:
    descending = signal < prev_signal - TREND_DEG
    ascending = signal > prev_signal + TREND_DEG

    if phase is SquatPhase.STANDING:
        if signal < thresholds.descending - HYSTERESIS_DEG:
            return SquatPhase.DESCENDING
    elif phase is SquatPhase.DESCENDING:
        if signal < thresholds.bottom + HYSTERESIS_DEG:
            return SquatPhase.BOTTOM
        if signal > thresholds.standing - HYSTERESIS_DEG and ascending:
            return SquatPhase.STANDING
    elif phase is SquatPhase.BOTTOM:
        if ascending and signal > thresholds.bottom + HYSTERESIS_DEG + BOTTOM_EXIT_MARGIN_DEG:
            return SquatPhase.ASCENDING
    elif phase is SquatPhase.ASCENDING:
        if signal > thresholds.standing - HYSTERESIS_DEG:
            return SquatPhase.STANDING
        if descending and signal < thresholds.descending:
            return SquatPhase.DESCENDING
    return phase


def next_pulling_phase(pct: float, phase: PullingPhase) -> PullingPhase:
    if phase is PullingPhase.EXTENDED:
        if pct > PULL_START_PCT:
            return PullingPhase.PULLING
    elif phase is PullingPhase.PULLING:
        if pct >= PULL_CONTRACTED_PCT:
            return PullingPhase.CONTRACTED
        if pct < PULL_EXTENDED_PCT:
            return PullingPhase.EXTENDED
    elif phase is PullingPhase.CONTRACTED:
        if pct < PULL_RETURNING_PCT:
            return PullingPhase.RETURNING
    elif phase is PullingPhase.RETURNING:
        if pct < PULL_EXTENDED_PCT:
            return PullingPhase.EXTENDED
        if pct > PULL_RETURNING_PCT:
            return PullingPhase.CONTRACTED
    return phase


class SquatPhaseMachine:
    def __init__(self, window: int = SMOOTHING_WINDOW) -> None:
        self.window = window
        self.phase = SquatPhase.STANDING
        self.history: deque[float] = deque()
        self.last_signal = INITIAL_KNEE_ANGLE

    def smooth(self, knee_angle: float) -> float:
        return smooth(self.history, knee_angle, self.window)

    def step(self, signal: float, thresholds: SquatThresholds = DEFAULT_SQUAT_THRESHOLDS) -> Transition:
        """Advance on one smoothed knee angle."""
        previous = self.phase
        self.phase = next_squat_phase(signal, self.last_signal, previous, thresholds)
        self.last_signal = signal
        return Transition(previous, self.phase)


class PullingPhaseMachine:
    def __init__(self, window: int = SMOOTHING_WINDOW) -> None:
        self.window = window
        self.phase = PullingPhase.EXTENDED
        self.history: deque[float] = deque()

    def smooth(self, position: float) -> float:
        return smooth(self.history, position, self.window)

    def step(self, pct: float) -> Transition:
        previous = self.phase
        self.phase = next_pulling_phase(pct, previous)
        return Transition(previous, self.phase)
