"""
AnalysisSession: the single entry point hosts talk to.

Owns one SessionState exclusively. Each analyze() call runs, in order:
validity -> signal + smoothing -> phase step -> calibration sample ->
rep detection / per-rep tracking -> scoring, and returns an immutable event.
Not thread-safe; give every stream its own session.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from . import signals
from .calibration import (
    PullingCalibration,
    PullingCalibrationStore,
    SquatCalibration,
    SquatCalibrationStore,
)
from .exercises import RECOMMENDED_CAMERA_MODE, CameraMode, Exercise, ExerciseFamily
from .geometry import rom_pct, smooth
from .phases import (
    PULLING_CYCLE,
    SMOOTHING_WINDOW,
    SQUAT_CYCLE,
    PullingPhase,
    PullingPhaseMachine,
    SquatPhase,
    SquatPhaseMachine,
)
from .pose import Frame
from .reps import CompletedRep, RepDetector
from .scoring import FeedbackMessage, RepResult, Rule, RuleId, ScoringInput, Severity, rules_for, score_rep
from .signals import PULLING_SIGNALS, PullingSignal
from .validity import (
    ConfidenceTier,
    Validity,
    classify,
    front_pulling_key_landmarks,
    side_pulling_key_landmarks,
    squat_key_landmarks,
)

logger = logging.getLogger(__name__)


# ---- events ----

@dataclass(frozen=True)
class Invalid:
    message: str


@dataclass(frozen=True)
class InProgress:
    phase: Enum
    position_signal: float
    rom_pct: Optional[float]
    confidence: ConfidenceTier
    live_feedback: tuple[FeedbackMessage, ...] = ()


@dataclass(frozen=True)
class RepCompleted:
    phase: Enum
    score: int
    feedback: tuple[FeedbackMessage, ...]
    rep_count: int


AnalysisEvent = Union[Invalid, InProgress, RepCompleted]


def event_to_dict(event: AnalysisEvent) -> dict[str, Any]:
    """JSON-ready view of an event for transports."""
    if isinstance(event, Invalid):
        return {"type": "invalid", "message": event.message}
    if isinstance(event, RepCompleted):
        return {
            "type": "rep_completed",
            "phase": event.phase.value,
            "score": event.score,
            "feedback": [f.to_dict() for f in event.feedback],
            "rep_count": event.rep_count,
        }
    return {
        "type": "in_progress",
        "phase": event.phase.value,
        "position_signal": round(event.position_signal, 4),
        "rom_pct": round(event.rom_pct, 1) if event.rom_pct is not None else None,
        "confidence": event.confidence.value,
        "live_feedback": [f.to_dict() for f in event.live_feedback],
    }


# ---- state ----

@dataclass
class SessionState:
    """All mutable per-session bookkeeping. Replaced wholesale on reset."""

    machine: Union[SquatPhaseMachine, PullingPhaseMachine]
    calibration: Union[SquatCalibrationStore, PullingCalibrationStore]
    reps: RepDetector
    torso_history: deque = field(default_factory=deque)
    elbow_history: deque = field(default_factory=deque)
    history: list[RepResult] = field(default_factory=list)

    @classmethod
    def new(cls, family: ExerciseFamily) -> "SessionState":
        if family is ExerciseFamily.SQUAT:
            return cls(SquatPhaseMachine(), SquatCalibrationStore(), RepDetector(SQUAT_CYCLE))
        return cls(PullingPhaseMachine(), PullingCalibrationStore(), RepDetector(PULLING_CYCLE))


@dataclass(frozen=True)
class _Profile:
    """Everything that depends on (exercise, camera mode), resolved once."""

    exercise: Exercise
    camera_mode: CameraMode
    key_landmarks: Callable[[Frame], list[int]]
    rules: tuple[Rule, ...]
    step: Callable[["AnalysisSession", Frame, float, Validity], AnalysisEvent]
    signal: Optional[PullingSignal] = None


def _low_visibility(validity: Validity) -> tuple[FeedbackMessage, ...]:
    if validity.confidence is ConfidenceTier.LOW and validity.message:
        return (FeedbackMessage(RuleId.LOW_VISIBILITY, validity.message, Severity.WARNING),)
    return ()


def _step_squat(session: "AnalysisSession", frame: Frame, timestamp_ms: float, validity: Validity) -> AnalysisEvent:
    state = session._state
    profile = session._profile
    machine: SquatPhaseMachine = state.machine  # type: ignore[assignment]
    store: SquatCalibrationStore = state.calibration  # type: ignore[assignment]

    knee = machine.smooth(signals.knee_angle(frame))
    transition = machine.step(knee, store.calibration.thresholds())
    if transition.changed:
        logger.debug("session: %s -> %s (knee=%.1f)", transition.previous.value, transition.current.value, knee)
    store.add_sample(transition.current, knee)

    done = state.reps.observe(transition, timestamp_ms)
    if state.reps.is_active(transition.current):
        metrics = state.reps.metrics
        if knee < metrics.min_knee_angle:
            metrics.min_knee_angle = knee
            metrics.mark_peak(frame, validity.confidence)

    if done is not None:
        inp = ScoringInput(
            frame=done.metrics.peak_frame or frame,
            exercise=profile.exercise,
            camera_mode=profile.camera_mode,
            confidence=done.metrics.peak_confidence or validity.confidence,
            knee_angle=done.metrics.min_knee_angle,
        )
        return session._complete(transition.current, done, inp)

    live: tuple[FeedbackMessage, ...] = ()
    if transition.current is SquatPhase.BOTTOM:
        inp = ScoringInput(
            frame=frame,
            exercise=profile.exercise,
            camera_mode=profile.camera_mode,
            confidence=validity.confidence,
            knee_angle=knee,
        )
        live = score_rep(inp, profile.rules).feedback
    cal = store.calibration
    return InProgress(
        phase=transition.current,
        position_signal=knee,
        rom_pct=rom_pct(knee, cal.standing_angle, cal.bottom_angle),
        confidence=validity.confidence,
        live_feedback=live + _low_visibility(validity),
    )


def _step_pulling(session: "AnalysisSession", frame: Frame, timestamp_ms: float, validity: Validity) -> AnalysisEvent:
    state = session._state
    profile = session._profile
    machine: PullingPhaseMachine = state.machine  # type: ignore[assignment]
    store: PullingCalibrationStore = state.calibration  # type: ignore[assignment]

    torso = smooth(state.torso_history, signals.torso_angle(frame), SMOOTHING_WINDOW)
    elbow = smooth(state.elbow_history, signals.elbow_angle(frame), SMOOTHING_WINDOW)
    asymmetry = signals.wrist_asymmetry(frame)
    position = machine.smooth(profile.signal.raw(frame))

    cal = store.calibration
    if cal.is_calibrated:
        pct = rom_pct(position, cal.extended_position, cal.contracted_position)
    else:
        pct = profile.signal.heuristic(frame, position)

    transition = machine.step(pct)
    if transition.changed:
        logger.debug("session: %s -> %s (pct=%.0f)", transition.previous.value, transition.current.value, pct)
    store.add_sample(transition.current, position, torso)
    cal = store.calibration
    current_rom: Optional[float] = None
    torso_swing = 0.0
    if cal.is_calibrated:
        current_rom = rom_pct(position, cal.extended_position, cal.contracted_position)
        torso_swing = abs(torso - cal.torso_base_angle)

    done = state.reps.observe(transition, timestamp_ms)
    if state.reps.is_active(transition.current):
        metrics = state.reps.metrics
        metrics.max_torso_swing = max(metrics.max_torso_swing, torso_swing)
        if current_rom is not None:
            metrics.max_rom_pct = max(metrics.max_rom_pct, current_rom)
        metrics.min_elbow_angle = min(metrics.min_elbow_angle, elbow)
        metrics.max_asymmetry_pct = max(metrics.max_asymmetry_pct, asymmetry)
        if transition.current is PullingPhase.CONTRACTED:
            metrics.mark_peak(frame, validity.confidence)

    if done is not None:
        m = done.metrics
        inp = ScoringInput(
            frame=m.peak_frame or frame,
            exercise=profile.exercise,
            camera_mode=profile.camera_mode,
            confidence=m.peak_confidence or validity.confidence,
            rom_pct=m.max_rom_pct if cal.is_calibrated else None,
            torso_swing=m.max_torso_swing,
            tempo_ms=done.tempo_ms,
            asymmetry_pct=m.max_asymmetry_pct,
            elbow_angle=m.min_elbow_angle,
        )
        return session._complete(transition.current, done, inp)

    live: tuple[FeedbackMessage, ...] = ()
    if transition.current is PullingPhase.CONTRACTED:
        # ROM and tempo are rep-level checks.
        inp = ScoringInput(
            frame=frame,
            exercise=profile.exercise,
            camera_mode=profile.camera_mode,
            confidence=validity.confidence,
            torso_swing=torso_swing,
            asymmetry_pct=asymmetry,
            elbow_angle=elbow,
        )
        live = score_rep(inp, profile.rules).feedback
    return InProgress(
        phase=transition.current,
        position_signal=position,
        rom_pct=current_rom,
        confidence=validity.confidence,
        live_feedback=live + _low_visibility(validity),
    )


_STEPS = {
    ExerciseFamily.SQUAT: _step_squat,
    ExerciseFamily.PULLING: _step_pulling,
}


def _resolve_profile(exercise: Exercise, camera_mode: CameraMode) -> _Profile:
    if exercise.family is ExerciseFamily.SQUAT:
        key_landmarks = squat_key_landmarks
    elif camera_mode is CameraMode.SIDE:
        key_landmarks = side_pulling_key_landmarks
    else:
        key_landmarks = front_pulling_key_landmarks
    return _Profile(
        exercise=exercise,
        camera_mode=camera_mode,
        key_landmarks=key_landmarks,
        rules=rules_for(exercise, camera_mode),
        step=_STEPS[exercise.family],
        signal=PULLING_SIGNALS.get(exercise),
    )


class AnalysisSession:
    """
    Usage:
        session = AnalysisSession(Exercise.SQUAT)
        for frame, ts in stream:
            event = session.analyze(frame, ts)

    Callers must drop frames whose timestamp equals the previous one.
    """

    def __init__(
        self,
        exercise: Union[Exercise, str] = Exercise.SQUAT,
        camera_mode: Union[CameraMode, str, None] = None,
    ):
        ex = Exercise.parse(exercise)
        mode = CameraMode.parse(camera_mode) if camera_mode is not None else RECOMMENDED_CAMERA_MODE[ex]
        self._profile = _resolve_profile(ex, mode)
        self._state = SessionState.new(ex.family)
        logger.info("session: started (%s, %s camera)", ex.value, mode.value)

    @property
    def exercise(self) -> Exercise:
        return self._profile.exercise

    @property
    def camera_mode(self) -> CameraMode:
        return self._profile.camera_mode

    @property
    def phase(self) -> Enum:
        return self._state.machine.phase

    @property
    def rep_count(self) -> int:
        return self._state.reps.rep_count

    @property
    def history(self) -> tuple[RepResult, ...]:
        return tuple(self._state.history)

    @property
    def calibration(self) -> Union[SquatCalibration, PullingCalibration]:
        return self._state.calibration.calibration

    def average_score(self) -> int:
        if not self._state.history:
            return 0
        return round(sum(r.score for r in self._state.history) / len(self._state.history))

    def configure(
        self,
        exercise: Union[Exercise, str, None] = None,
        camera_mode: Union[CameraMode, str, None] = None,
    ) -> bool:
        """
        Switch exercise and/or camera mode. A change resets the session; a new
        exercise without an explicit mode gets its recommended mode.
        Returns True when anything changed. Unknown names raise ValueError.
        """
        ex = Exercise.parse(exercise) if exercise is not None else self.exercise
        if camera_mode is not None:
            mode = CameraMode.parse(camera_mode)
        elif ex is not self.exercise:
            mode = RECOMMENDED_CAMERA_MODE[ex]
        else:
            mode = self.camera_mode
        if ex is self.exercise and mode is self.camera_mode:
            return False
        self._profile = _resolve_profile(ex, mode)
        self.reset()
        return True

    def reset(self) -> None:
        """Back to defaults: phase, calibration, accumulators and history."""
        self._state = SessionState.new(self.exercise.family)
        logger.info("session: reset (%s, %s camera)", self.exercise.value, self.camera_mode.value)

    def analyze(
        self,
        frame: Frame,
        timestamp_ms: float,
        exercise: Union[Exercise, str, None] = None,
        camera_mode: Union[CameraMode, str, None] = None,
    ) -> AnalysisEvent:
        """
        Process one frame. An invalid frame (key landmark missing or not
        present) yields Invalid and leaves the session untouched.
        """
        if exercise is not None or camera_mode is not None:
            self.configure(exercise, camera_mode)
        validity = classify(frame, self._profile.key_landmarks(frame))
        if not validity.is_valid:
            return Invalid(validity.message or "")
        return self._profile.step(self, frame, timestamp_ms, validity)

    def _complete(self, phase: Enum, done: CompletedRep, inp: ScoringInput) -> RepCompleted:
        result = score_rep(inp, self._profile.rules)
        self._state.history.append(result)
        logger.info(
            "session: rep %d scored %d (tempo=%.0f ms, feedback=%s)",
            done.rep_count,
            result.score,
            done.tempo_ms,
            ",".join(f.rule_id.value for f in result.feedback),
        )
        return RepCompleted(phase, result.score, result.feedback, done.rep_count)
