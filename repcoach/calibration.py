"""
Online per-session calibration. Extremal samples are harvested from the first
reps while the user trains normally, then frozen into reference values.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from .geometry import average
from .phases import DEFAULT_SQUAT_THRESHOLDS, PullingPhase, SquatPhase, SquatThresholds

logger = logging.getLogger(__name__)

# Samples needed at each extreme before calibration freezes.
CALIBRATION_SAMPLES_NEEDED = 3
# Per-extreme sample list caps.
SQUAT_SAMPLE_CAP = 5
PULLING_SAMPLE_CAP = 3
# Sanity bounds for squat samples (smoothed knee angle, deg).
STANDING_SAMPLE_MIN_DEG = 150.0
BOTTOM_SAMPLE_MAX_DEG = 120.0


@dataclass(frozen=True)
class SquatCalibration:
    standing_angle: float = 170.0
    bottom_angle: float = 90.0
    is_calibrated: bool = False

    def thresholds(self) -> SquatThresholds:
        if not self.is_calibrated:
            return DEFAULT_SQUAT_THRESHOLDS
        return SquatThresholds.from_range(self.standing_angle, self.bottom_angle)


@dataclass(frozen=True)
class PullingCalibration:
    extended_position: float = 0.0
    contracted_position: float = 0.0
    torso_base_angle: float = 0.0
    is_calibrated: bool = False


class SquatCalibrationStore:
    def __init__(self) -> None:
        self.calibration = SquatCalibration()
        self._standing: list[float] = []
        self._bottom: list[float] = []

    def add_sample(self, phase: SquatPhase, knee_angle: float) -> bool:
        """Record a sample if useful. Returns True on the call that freezes calibration."""
        if self.calibration.is_calibrated:
            return False
        if (
            phase is SquatPhase.STANDING
            and knee_angle > STANDING_SAMPLE_MIN_DEG
            and len(self._standing) < SQUAT_SAMPLE_CAP
        ):
            self._standing.append(knee_angle)
        if (
            phase is SquatPhase.BOTTOM
            and knee_angle < BOTTOM_SAMPLE_MAX_DEG
            and len(self._bottom) < SQUAT_SAMPLE_CAP
        ):
            self._bottom.append(knee_angle)

        if len(self._standing) >= CALIBRATION_SAMPLES_NEEDED and len(self._bottom) >= CALIBRATION_SAMPLES_NEEDED:
            self.calibration = replace(
                self.calibration,
                standing_angle=average(self._standing),
                bottom_angle=average(self._bottom),
                is_calibrated=True,
            )
            self._standing.clear()
            self._bottom.clear()
            logger.info(
                "calibration: squat calibrated (standing=%.1f bottom=%.1f)",
                self.calibration.standing_angle,
                self.calibration.bottom_angle,
            )
            return True
        return False


class PullingCalibrationStore:
    def __init__(self) -> None:
        self.calibration = PullingCalibration()
        self._extended: list[float] = []
        self._contracted: list[float] = []
        self._torso_base: list[float] = []

    def add_sample(self, phase: PullingPhase, position: float, torso_angle: float) -> bool:
        """Extended samples also record the torso baseline. True when calibration freezes."""
        if self.calibration.is_calibrated:
            return False
        if phase is PullingPhase.EXTENDED and len(self._extended) < PULLING_SAMPLE_CAP:
            self._extended.append(position)
            self._torso_base.append(torso_angle)
        if phase is PullingPhase.CONTRACTED and len(self._contracted) < PULLING_SAMPLE_CAP:
            self._contracted.append(position)

        if len(self._extended) >= CALIBRATION_SAMPLES_NEEDED and len(self._contracted) >= CALIBRATION_SAMPLES_NEEDED:
            self.calibration = PullingCalibration(
                extended_position=average(self._extended),
                contracted_position=average(self._contracted),
                torso_base_angle=average(self._torso_base),
                is_calibrated=True,
            )
            self._extended.clear()
            self._contracted.clear()
            self._torso_base.clear()
            logger.info(
                "calibration: pulling calibrated (extended=%.3f contracted=%.3f torso_base=%.1f)",
                self.calibration.extended_position,
                self.calibration.contracted_position,
                self.calibration.torso_base_angle,
            )
            return True
        return False
