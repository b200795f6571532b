"""
Form scoring: independent deductive rules per (exercise family, camera mode).

Every rep starts at 100. Each rule whose fault condition holds subtracts its
base deduction scaled by the frame's confidence multiplier and adds one
feedback message. The squat depth bonus is a flat +5 (not scaled). The total
is clamped to [0, 100] and rounded half-up to an int.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

from .exercises import CameraMode, Exercise, ExerciseFamily
from .geometry import clamp
from .pose import Frame, LandmarkIdx
from .signals import facing_sign, shoulder_ear_gap, side_idx, torso_angle, visible_side
from .validity import ConfidenceTier

MAX_SCORE = 100.0

# Squat
SQUAT_ROM_MAX_KNEE_DEG = 120.0
SQUAT_DEPTH_BONUS_KNEE_DEG = 90.0
DEPTH_BONUS_POINTS = 5.0
KNEE_HEIGHT_DIFF_MAX = 0.05
VALGUS_MARGIN = 0.03
KNEE_OVER_TOE_MARGIN = 0.08
TORSO_LEAN_MAX_DEG = 30.0
# Pulling
MOMENTUM_MAX_DEG = 25.0
MIN_TEMPO_MS = 500.0
MIN_ROM_PCT = 70.0
SHRUG_MIN_GAP = 0.03
ASYMMETRY_MAX_PCT = 5.0
STRAIGHT_ARM_MIN_ELBOW_DEG = 160.0


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class RuleId(Enum):
    ROM_INSUFFICIENT = "ROM_INSUFFICIENT"
    ASYMMETRY = "ASYMMETRY"
    KNEE_VALGUS = "KNEE_VALGUS"
    KNEE_OVER_TOE = "KNEE_OVER_TOE"
    TORSO_LEAN = "TORSO_LEAN"
    EXCESSIVE_MOMENTUM = "EXCESSIVE_MOMENTUM"
    TOO_FAST = "TOO_FAST"
    SHOULDER_SHRUG = "SHOULDER_SHRUG"
    ELBOW_BEND = "ELBOW_BEND"
    DEPTH_BONUS = "DEPTH_BONUS"
    GOOD_FORM = "GOOD_FORM"
    LOW_VISIBILITY = "LOW_VISIBILITY"


@dataclass(frozen=True)
class FeedbackMessage:
    rule_id: RuleId
    message: str
    severity: Severity
    deduction: float = 0.0

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id.value,
            "message": self.message,
            "severity": self.severity.value,
            "deduction": self.deduction,
        }


@dataclass(frozen=True)
class RepResult:
    score: int
    feedback: tuple[FeedbackMessage, ...]

    def to_dict(self) -> dict:
        return {"score": self.score, "feedback": [f.to_dict() for f in self.feedback]}


@dataclass(frozen=True)
class ScoringInput:
    """
    What a rule may look at. rom_pct=None skips the pulling ROM rule
    (before calibration, or for live feedback); tempo_ms=0 skips the tempo rule.
    """

    frame: Frame
    exercise: Exercise
    camera_mode: CameraMode
    confidence: ConfidenceTier = ConfidenceTier.HIGH
    knee_angle: float = 180.0
    rom_pct: Optional[float] = None
    torso_swing: float = 0.0
    tempo_ms: float = 0.0
    asymmetry_pct: float = 0.0
    elbow_angle: float = 180.0


@dataclass(frozen=True)
class Rule:
    rule_id: RuleId
    deduction: float
    severity: Severity
    message: Union[str, Callable[[ScoringInput], str]]
    applies: Callable[[ScoringInput], bool]
    # None means every exercise of the family.
    exercises: Optional[frozenset[Exercise]] = None
    bonus: bool = False

    def render(self, inp: ScoringInput) -> str:
        return self.message(inp) if callable(self.message) else self.message


# ---- squat conditions (evaluated on the rep's deepest frame) ----

def _squat_too_shallow(inp: ScoringInput) -> bool:
    return inp.knee_angle > SQUAT_ROM_MAX_KNEE_DEG


def _uneven_knees(inp: ScoringInput) -> bool:
    left = inp.frame[LandmarkIdx.LEFT_KNEE]
    right = inp.frame[LandmarkIdx.RIGHT_KNEE]
    return abs(left.y - right.y) > KNEE_HEIGHT_DIFF_MAX


def _knee_valgus(inp: ScoringInput) -> bool:
    """Mirrored (selfie) view: the left leg is on the left of the image."""
    f = inp.frame
    left_in = f[LandmarkIdx.LEFT_KNEE].x > f[LandmarkIdx.LEFT_ANKLE].x + VALGUS_MARGIN
    right_in = f[LandmarkIdx.RIGHT_KNEE].x < f[LandmarkIdx.RIGHT_ANKLE].x - VALGUS_MARGIN
    return left_in or right_in


def _knee_over_toe(inp: ScoringInput) -> bool:
    f = inp.frame
    side = visible_side(f, "knee")
    forward = facing_sign(f, side)
    ahead = (f[side_idx(side, "knee")].x - f[side_idx(side, "ankle")].x) * forward
    return ahead > KNEE_OVER_TOE_MARGIN


def _torso_lean(inp: ScoringInput) -> bool:
    return abs(torso_angle(inp.frame)) > TORSO_LEAN_MAX_DEG


def _deep_squat(inp: ScoringInput) -> bool:
    return inp.knee_angle < SQUAT_DEPTH_BONUS_KNEE_DEG


# ---- pulling conditions ----

def _momentum(inp: ScoringInput) -> bool:
    return inp.torso_swing > MOMENTUM_MAX_DEG


def _too_fast(inp: ScoringInput) -> bool:
    return 0 < inp.tempo_ms < MIN_TEMPO_MS


def _short_rom(inp: ScoringInput) -> bool:
    return inp.rom_pct is not None and inp.rom_pct < MIN_ROM_PCT


def _shrug(inp: ScoringInput) -> bool:
    return shoulder_ear_gap(inp.frame) < SHRUG_MIN_GAP


def _arm_asymmetry(inp: ScoringInput) -> bool:
    return inp.asymmetry_pct > ASYMMETRY_MAX_PCT


def _elbow_bent(inp: ScoringInput) -> bool:
    return inp.elbow_angle < STRAIGHT_ARM_MIN_ELBOW_DEG


SQUAT_ROM = Rule(RuleId.ROM_INSUFFICIENT, 15, Severity.WARNING, "Squat deeper", _squat_too_shallow)
SQUAT_ASYMMETRY = Rule(
    RuleId.ASYMMETRY, 10, Severity.INFO, "Keep both knees at the same height", _uneven_knees
)
KNEE_VALGUS = Rule(
    RuleId.KNEE_VALGUS, 15, Severity.ERROR, "Your knees are caving inward", _knee_valgus
)
KNEE_OVER_TOE = Rule(
    RuleId.KNEE_OVER_TOE, 15, Severity.WARNING, "Your knees are travelling past your toes", _knee_over_toe
)
TORSO_LEAN = Rule(
    RuleId.TORSO_LEAN, 10, Severity.WARNING, "Keep your chest more upright", _torso_lean
)
DEPTH_BONUS = Rule(
    RuleId.DEPTH_BONUS, DEPTH_BONUS_POINTS, Severity.INFO, "Great depth!", _deep_squat, bonus=True
)

EXCESSIVE_MOMENTUM = Rule(
    RuleId.EXCESSIVE_MOMENTUM, 20, Severity.WARNING, "Too much torso swing. Brace and pull", _momentum
)
TOO_FAST = Rule(RuleId.TOO_FAST, 10, Severity.INFO, "Slow down a little", _too_fast)
PULL_ROM = Rule(
    RuleId.ROM_INSUFFICIENT, 15, Severity.WARNING, "Use a fuller range of motion", _short_rom
)
SHOULDER_SHRUG = Rule(
    RuleId.SHOULDER_SHRUG,
    10,
    Severity.WARNING,
    "Keep your shoulders down and squeeze your shoulder blades",
    _shrug,
    exercises=frozenset({Exercise.SEATED_ROW, Exercise.LAT_PULLDOWN}),
)
ARM_ASYMMETRY = Rule(
    RuleId.ASYMMETRY,
    10,
    Severity.INFO,
    lambda inp: f"Left and right differ by {inp.asymmetry_pct:.0f}%",
    _arm_asymmetry,
)
ELBOW_BEND = Rule(
    RuleId.ELBOW_BEND,
    20,
    Severity.WARNING,
    "Keep your elbows straight; your biceps are taking over",
    _elbow_bent,
    exercises=frozenset({Exercise.STRAIGHT_ARM}),
)

RULE_TABLE: dict[tuple[ExerciseFamily, CameraMode], tuple[Rule, ...]] = {
    (ExerciseFamily.SQUAT, CameraMode.FRONT): (SQUAT_ROM, SQUAT_ASYMMETRY, KNEE_VALGUS, DEPTH_BONUS),
    (ExerciseFamily.SQUAT, CameraMode.SIDE): (
        SQUAT_ROM,
        SQUAT_ASYMMETRY,
        KNEE_OVER_TOE,
        TORSO_LEAN,
        DEPTH_BONUS,
    ),
    (ExerciseFamily.PULLING, CameraMode.SIDE): (
        EXCESSIVE_MOMENTUM,
        TOO_FAST,
        PULL_ROM,
        SHOULDER_SHRUG,
        ELBOW_BEND,
    ),
    (ExerciseFamily.PULLING, CameraMode.FRONT): (
        TOO_FAST,
        PULL_ROM,
        SHOULDER_SHRUG,
        ARM_ASYMMETRY,
        ELBOW_BEND,
    ),
}


def rules_for(exercise: Exercise, camera_mode: CameraMode) -> tuple[Rule, ...]:
    """Rule subset for one exercise seen from one camera orientation."""
    rules = RULE_TABLE[(exercise.family, camera_mode)]
    return tuple(r for r in rules if r.exercises is None or exercise in r.exercises)


def score_rep(inp: ScoringInput, rules: tuple[Rule, ...]) -> RepResult:
    multiplier = inp.confidence.multiplier
    score = MAX_SCORE
    feedback: list[FeedbackMessage] = []
    bonus_fired = False
    for rule in rules:
        if not rule.applies(inp):
            continue
        if rule.bonus:
            score += rule.deduction
            bonus_fired = True
            continue
        deduction = rule.deduction * multiplier
        score -= deduction
        feedback.append(FeedbackMessage(rule.rule_id, rule.render(inp), rule.severity, deduction))

    if not feedback:
        message = DEPTH_BONUS.message if bonus_fired else "Good form!"
        feedback.append(FeedbackMessage(RuleId.GOOD_FORM, message, Severity.INFO))

    final = int(math.floor(clamp(score, 0.0, MAX_SCORE) + 0.5))
    return RepResult(final, tuple(feedback))
