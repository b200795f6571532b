"""
Landmark validity: is a frame usable, and how far can its geometry be trusted.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from .geometry import avg_visibility, pick_visible_side
from .pose import Frame, LandmarkIdx

# Landmarks below this presence are treated as not detected.
MIN_PRESENCE = 0.5
# Average visibility tiers over the key landmarks.
LOW_VISIBILITY_MAX = 0.5
MEDIUM_VISIBILITY_MAX = 0.75

REPOSITION_MESSAGE = "Reposition so your whole body is in view"
OCCLUDED_MESSAGE = "Some joints are hidden from the camera"


class ConfidenceTier(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def multiplier(self) -> float:
        """Scales scoring deductions so uncertain frames under-penalize."""
        return CONFIDENCE_MULTIPLIER[self]


CONFIDENCE_MULTIPLIER = {
    ConfidenceTier.HIGH: 1.0,
    ConfidenceTier.MEDIUM: 0.7,
    ConfidenceTier.LOW: 0.5,
}


@dataclass(frozen=True)
class Validity:
    is_valid: bool
    confidence: ConfidenceTier
    message: Optional[str] = None


def classify(frame: Frame, key_indices: Sequence[int]) -> Validity:
    """Presence gate first (fail fast), then a visibility tier."""
    for idx in key_indices:
        lm = frame[idx] if idx < len(frame) else None
        if lm is None or not math.isfinite(lm.presence) or lm.presence < MIN_PRESENCE:
            return Validity(False, ConfidenceTier.LOW, REPOSITION_MESSAGE)

    avg = avg_visibility(frame, key_indices)
    if not math.isfinite(avg) or avg < LOW_VISIBILITY_MAX:
        return Validity(True, ConfidenceTier.LOW, OCCLUDED_MESSAGE)
    if avg < MEDIUM_VISIBILITY_MAX:
        return Validity(True, ConfidenceTier.MEDIUM)
    return Validity(True, ConfidenceTier.HIGH)


def squat_key_landmarks(frame: Frame) -> list[int]:
    """Fixed set; `frame` is accepted for a uniform selector signature."""
    return [
        LandmarkIdx.LEFT_HIP,
        LandmarkIdx.RIGHT_HIP,
        LandmarkIdx.LEFT_KNEE,
        LandmarkIdx.RIGHT_KNEE,
        LandmarkIdx.LEFT_ANKLE,
        LandmarkIdx.RIGHT_ANKLE,
    ]


def side_pulling_key_landmarks(frame: Frame) -> list[int]:
    """Shoulder/elbow/wrist/hip of whichever side faces the camera."""
    shoulder = pick_visible_side(frame, LandmarkIdx.LEFT_SHOULDER, LandmarkIdx.RIGHT_SHOULDER)
    if shoulder == LandmarkIdx.LEFT_SHOULDER:
        return [shoulder, LandmarkIdx.LEFT_ELBOW, LandmarkIdx.LEFT_WRIST, LandmarkIdx.LEFT_HIP]
    return [shoulder, LandmarkIdx.RIGHT_ELBOW, LandmarkIdx.RIGHT_WRIST, LandmarkIdx.RIGHT_HIP]


def front_pulling_key_landmarks(frame: Frame) -> list[int]:
    """Both arms, regardless of `frame`."""
    return [
        LandmarkIdx.LEFT_SHOULDER,
        LandmarkIdx.RIGHT_SHOULDER,
        LandmarkIdx.LEFT_ELBOW,
        LandmarkIdx.RIGHT_ELBOW,
        LandmarkIdx.LEFT_WRIST,
        LandmarkIdx.RIGHT_WRIST,
    ]
