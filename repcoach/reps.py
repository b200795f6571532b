"""
Rep detection on phase transitions.

A rep opens on the first edge out of the initial phase and closes on the
return edge (squat ASCENDING -> STANDING, pulling RETURNING -> EXTENDED).
Closures closer than MIN_REP_DURATION_MS to the previous counted rep are
treated as phase flicker and dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, Sequence

from .phases import Transition
from .pose import Frame
from .validity import ConfidenceTier

logger = logging.getLogger(__name__)

# Minimum time between two counted reps (ms).
MIN_REP_DURATION_MS = 800.0


@dataclass
class RepMetrics:
    """Per-rep extrema, accumulated while the phase is in the active half of the cycle."""

    max_torso_swing: float = 0.0
    max_rom_pct: float = 0.0
    min_elbow_angle: float = 180.0
    max_asymmetry_pct: float = 0.0
    min_knee_angle: float = 180.0
    # Frame the landmark rules are evaluated on (deepest squat / last contracted frame).
    peak_frame: Optional[Frame] = field(default=None, repr=False)
    peak_confidence: Optional[ConfidenceTier] = None

    def mark_peak(self, frame: Frame, confidence: ConfidenceTier) -> None:
        self.peak_frame = frame
        self.peak_confidence = confidence


class CompletedRep(NamedTuple):
    rep_count: int
    tempo_ms: float
    metrics: RepMetrics


class RepDetector:
    """
    Counts reps for one 4-phase cycle. The first two phases after the initial
    one form the active half, where per-rep metrics are tracked.
    """

    def __init__(self, cycle: Sequence[Enum], min_rep_duration_ms: float = MIN_REP_DURATION_MS):
        self.initial = cycle[0]
        self.start_phase = cycle[1]
        self.closing_phase = cycle[-1]
        self.active_phases = frozenset(cycle[1:3])
        self.min_rep_duration_ms = min_rep_duration_ms
        self.rep_count = 0
        self.last_rep_ms: Optional[float] = None
        self.rep_start_ms: Optional[float] = None
        self.metrics = RepMetrics()

    def is_active(self, phase: Enum) -> bool:
        return phase in self.active_phases

    def observe(self, transition: Transition, timestamp_ms: float) -> Optional[CompletedRep]:
        """
        Feed one phase transition. On the opening edge the accumulators restart;
        on a counted closing edge the finished rep (with its metrics) is returned
        and a fresh accumulator takes its place.
        """
        previous, current = transition
        if previous is self.initial and current is self.start_phase:
            self.rep_start_ms = timestamp_ms
            self.metrics = RepMetrics()
            return None

        if previous is not self.closing_phase or current is not self.initial:
            return None

        if self.last_rep_ms is not None and timestamp_ms - self.last_rep_ms < self.min_rep_duration_ms:
            logger.debug(
                "reps: debounced cycle at %.0f ms (%.0f ms after previous rep)",
                timestamp_ms,
                timestamp_ms - self.last_rep_ms,
            )
            return None

        self.rep_count += 1
        tempo_ms = timestamp_ms - self.rep_start_ms if self.rep_start_ms is not None else 0.0
        self.last_rep_ms = timestamp_ms
        done = CompletedRep(self.rep_count, tempo_ms, self.metrics)
        self.metrics = RepMetrics()
        return done
