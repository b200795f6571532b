"""
Supported exercises, their families and camera orientations.
"""
from __future__ import annotations

from enum import Enum


class ExerciseFamily(Enum):
    SQUAT = "squat"
    PULLING = "pulling"


class CameraMode(Enum):
    FRONT = "front"
    SIDE = "side"

    @classmethod
    def parse(cls, name: "str | CameraMode") -> "CameraMode":
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        for mode in cls:
            if mode.value == key:
                return mode
        raise ValueError(f"Unknown camera mode: {name!r} (expected one of: front, side)")


class Exercise(Enum):
    SQUAT = "squat"
    LAT_PULLDOWN = "lat_pulldown"  # side
    SEATED_ROW = "seated_row"  # side
    STRAIGHT_ARM = "straight_arm"  # straight-arm pulldown, side
    REAR_DELT = "rear_delt"  # front

    @property
    def family(self) -> ExerciseFamily:
        if self is Exercise.SQUAT:
            return ExerciseFamily.SQUAT
        return ExerciseFamily.PULLING

    @classmethod
    def parse(cls, name: "str | Exercise") -> "Exercise":
        """Accept 'lat-pulldown', 'LAT_PULLDOWN', 'Lat Pulldown', ..."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower().replace("-", "_").replace(" ", "_")
        for ex in cls:
            if ex.value == key:
                return ex
        names = ", ".join(ex.value for ex in cls)
        raise ValueError(f"Unknown exercise: {name!r} (expected one of: {names})")


RECOMMENDED_CAMERA_MODE: dict[Exercise, CameraMode] = {
    Exercise.SQUAT: CameraMode.FRONT,
    Exercise.LAT_PULLDOWN: CameraMode.SIDE,
    Exercise.SEATED_ROW: CameraMode.SIDE,
    Exercise.STRAIGHT_ARM: CameraMode.SIDE,
    Exercise.REAR_DELT: CameraMode.FRONT,
}

DISPLAY_NAMES: dict[Exercise, str] = {
    Exercise.SQUAT: "Squat",
    Exercise.LAT_PULLDOWN: "Lat pulldown",
    Exercise.SEATED_ROW: "Seated row",
    Exercise.STRAIGHT_ARM: "Straight-arm pulldown",
    Exercise.REAR_DELT: "Rear delt fly",
}
