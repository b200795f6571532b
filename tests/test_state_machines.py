"""Tests for calibration, phase state machines and rep detection."""

import pytest

from repcoach.calibration import (
    CALIBRATION_SAMPLES_NEEDED,
    PullingCalibrationStore,
    SquatCalibration,
    SquatCalibrationStore,
)
from repcoach.phases import (
    DEFAULT_SQUAT_THRESHOLDS,
    PULLING_CYCLE,
    SQUAT_CYCLE,
    PullingPhase,
    PullingPhaseMachine,
    SquatPhase,
    SquatPhaseMachine,
    SquatThresholds,
    Transition,
    next_pulling_phase,
    next_squat_phase,
)
from repcoach.reps import MIN_REP_DURATION_MS, RepDetector

from helpers import sweep

S = SquatPhase
P = PullingPhase

SQUAT_EDGES = {
    (S.STANDING, S.DESCENDING), (S.DESCENDING, S.BOTTOM), (S.DESCENDING, S.STANDING),
    (S.BOTTOM, S.ASCENDING), (S.ASCENDING, S.STANDING), (S.ASCENDING, S.DESCENDING),
}
PULLING_EDGES = {
    (P.EXTENDED, P.PULLING), (P.PULLING, P.CONTRACTED), (P.PULLING, P.EXTENDED),
    (P.CONTRACTED, P.RETURNING), (P.RETURNING, P.EXTENDED), (P.RETURNING, P.CONTRACTED),
}


# ============================================================================
# Calibration
# ============================================================================

class TestSquatCalibration:

    def test_defaults(self):
        cal = SquatCalibrationStore().calibration
        assert (cal.standing_angle, cal.bottom_angle, cal.is_calibrated) == (170.0, 90.0, False)
        assert cal.thresholds() == DEFAULT_SQUAT_THRESHOLDS

    def test_monotonic_after_three_each(self):
        store = SquatCalibrationStore()
        for _ in range(5):
            assert not store.add_sample(S.STANDING, 176.0)
        assert not store.calibration.is_calibrated
        assert not store.add_sample(S.BOTTOM, 94.0)
        assert not store.add_sample(S.BOTTOM, 96.0)
        assert not store.calibration.is_calibrated
        assert store.add_sample(S.BOTTOM, 92.0)
        cal = store.calibration
        assert cal.is_calibrated
        assert cal.standing_angle == pytest.approx(176.0)
        assert cal.bottom_angle == pytest.approx(94.0)
        # Frozen from here on.
        assert not store.add_sample(S.BOTTOM, 60.0)
        assert store.calibration == cal

    def test_sanity_bounds(self):
        store = SquatCalibrationStore()
        for _ in range(3):
            store.add_sample(S.STANDING, 140.0)  # too bent to be standing
            store.add_sample(S.BOTTOM, 130.0)  # too shallow to be a bottom
            store.add_sample(S.DESCENDING, 100.0)
        assert not store.calibration.is_calibrated

    def test_calibrated_thresholds(self):
        cal = SquatCalibration(standing_angle=180.0, bottom_angle=80.0, is_calibrated=True)
        th = cal.thresholds()
        assert isinstance(th, SquatThresholds)
        assert th.standing == pytest.approx(165.0)
        assert th.descending == pytest.approx(150.0)
        assert th.bottom == pytest.approx(100.0)


class TestPullingCalibration:

    def test_torso_baseline_follows_extended_samples(self):
        store = PullingCalibrationStore()
        for torso in (2.0, 4.0, 6.0, 8.0):
            store.add_sample(P.EXTENDED, 0.1, torso)
        for pos in (0.45, 0.47):
            assert not store.add_sample(P.CONTRACTED, pos, 30.0)
        assert store.add_sample(P.CONTRACTED, 0.49, 30.0)
        cal = store.calibration
        assert cal.is_calibrated
        assert cal.extended_position == pytest.approx(0.1)
        assert cal.contracted_position == pytest.approx(0.47)
        # Only the first three extended samples are kept.
        assert cal.torso_base_angle == pytest.approx(4.0)

    def test_needs_both_extremes(self):
        store = PullingCalibrationStore()
        for _ in range(CALIBRATION_SAMPLES_NEEDED * 3):
            store.add_sample(P.EXTENDED, 0.1, 0.0)
            store.add_sample(P.PULLING, 0.3, 0.0)
        assert not store.calibration.is_calibrated


# ============================================================================
# Phase machines
# ============================================================================

def _visited(phases):
    out = [phases[0]]
    for p in phases[1:]:
        if p is not out[-1]:
            out.append(p)
    return out


class TestSquatPhases:

    def test_full_cycle_per_sweep(self):
        machine = SquatPhaseMachine()
        phases = [machine.phase]
        edges = set()
        for _ in range(3):
            for raw in sweep(90.0, 180.0, 40) + [180.0] * 3:
                t = machine.step(machine.smooth(raw))
                phases.append(t.current)
                if t.changed:
                    edges.add((t.previous, t.current))
        assert _visited(phases) == list(SQUAT_CYCLE) * 3 + [S.STANDING]
        assert edges <= SQUAT_EDGES

    def test_hysteresis_holds_near_threshold(self):
        # 136 is inside the dead band below the 140 descending threshold.
        machine = SquatPhaseMachine()
        for _ in range(10):
            machine.step(machine.smooth(136.0))
        assert machine.phase is S.STANDING

    def test_bottom_needs_upward_trend(self):
        th = DEFAULT_SQUAT_THRESHOLDS
        # above the exit band but flat
        assert next_squat_phase(145.0, 144.0, S.BOTTOM, th) is S.BOTTOM
        assert next_squat_phase(145.0, 140.0, S.BOTTOM, th) is S.ASCENDING

    def test_reversals(self):
        th = DEFAULT_SQUAT_THRESHOLDS
        assert next_squat_phase(158.0, 150.0, S.DESCENDING, th) is S.STANDING
        assert next_squat_phase(158.0, 158.0, S.DESCENDING, th) is S.DESCENDING
        assert next_squat_phase(135.0, 140.0, S.ASCENDING, th) is S.DESCENDING

    def test_buffer_bounded(self):
        machine = SquatPhaseMachine()
        for raw in sweep(90.0, 180.0, 40) * 20:
            machine.step(machine.smooth(raw))
        assert len(machine.history) == 3


class TestPullingPhases:

    def test_full_cycle_per_sweep(self):
        machine = PullingPhaseMachine()
        phases = [machine.phase]
        edges = set()
        for _ in range(4):
            for pct in [100.0 - s for s in sweep(0.0, 100.0, 20)]:
                t = machine.step(pct)
                phases.append(t.current)
                if t.changed:
                    edges.add((t.previous, t.current))
        assert _visited(phases) == list(PULLING_CYCLE) * 4 + [P.EXTENDED]
        assert edges <= PULLING_EDGES

    @pytest.mark.parametrize(
        "phase,pct,expected",
        [
            (P.EXTENDED, 40.0, P.EXTENDED),
            (P.EXTENDED, 41.0, P.PULLING),
            (P.PULLING, 80.0, P.CONTRACTED),
            (P.PULLING, 29.0, P.EXTENDED),
            (P.PULLING, 50.0, P.PULLING),
            (P.CONTRACTED, 75.0, P.CONTRACTED),
            (P.CONTRACTED, 69.0, P.RETURNING),
            (P.RETURNING, 29.0, P.EXTENDED),
            (P.RETURNING, 71.0, P.CONTRACTED),
            (P.RETURNING, 50.0, P.RETURNING),
        ],
    )
    def test_thresholds(self, phase, pct, expected):
        assert next_pulling_phase(pct, phase) is expected


# ============================================================================
# Rep detector
# ============================================================================

def _cycle(detector, start_ms, end_ms):
    detector.observe(Transition(S.STANDING, S.DESCENDING), start_ms)
    detector.observe(Transition(S.DESCENDING, S.BOTTOM), start_ms + 10)
    detector.observe(Transition(S.BOTTOM, S.ASCENDING), start_ms + 20)
    return detector.observe(Transition(S.ASCENDING, S.STANDING), end_ms)


class TestRepDetector:

    def test_counts_on_return_edge_with_tempo(self):
        detector = RepDetector(SQUAT_CYCLE)
        done = _cycle(detector, 1000.0, 2500.0)
        assert done is not None
        assert done.rep_count == 1
        assert done.tempo_ms == pytest.approx(1500.0)
        assert detector.rep_count == 1

    def test_debounce_two_quick_cycles_count_once(self):
        detector = RepDetector(SQUAT_CYCLE)
        assert _cycle(detector, 0.0, 1000.0) is not None
        assert _cycle(detector, 1100.0, 1000.0 + MIN_REP_DURATION_MS - 1) is None
        assert detector.rep_count == 1
        assert _cycle(detector, 2000.0, 3000.0) is not None
        assert detector.rep_count == 2

    def test_other_edges_do_not_count(self):
        detector = RepDetector(SQUAT_CYCLE)
        assert detector.observe(Transition(S.DESCENDING, S.STANDING), 5000.0) is None
        assert detector.observe(Transition(S.STANDING, S.STANDING), 6000.0) is None
        assert detector.rep_count == 0

    def test_metrics_reset_on_rep_start_and_completion(self):
        detector = RepDetector(PULLING_CYCLE)
        detector.observe(Transition(P.EXTENDED, P.PULLING), 0.0)
        detector.metrics.max_torso_swing = 12.0
        detector.observe(Transition(P.PULLING, P.CONTRACTED), 300.0)
        detector.observe(Transition(P.CONTRACTED, P.RETURNING), 600.0)
        done = detector.observe(Transition(P.RETURNING, P.EXTENDED), 900.0)
        assert done.metrics.max_torso_swing == 12.0
        assert detector.metrics.max_torso_swing == 0.0
        detector.metrics.max_torso_swing = 5.0
        detector.observe(Transition(P.EXTENDED, P.PULLING), 2000.0)
        assert detector.metrics.max_torso_swing == 0.0

    def test_active_half(self):
        squat = RepDetector(SQUAT_CYCLE)
        pulling = RepDetector(PULLING_CYCLE)
        assert [squat.is_active(p) for p in SQUAT_CYCLE] == [False, True, True, False]
        assert [pulling.is_active(p) for p in PULLING_CYCLE] == [False, True, True, False]
