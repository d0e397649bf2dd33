from __future__ import annotations

import math
import threading

import pytest

from gazetrack.core.calibration import (
    DEFAULT_TARGETS,
    CalibrationApplier,
    CalibrationEngine,
    CalibrationError,
    CalibrationFailure,
    Collecting,
    Complete,
    Failed,
    Idle,
    apply_calibration,
    calibration_info,
    fit_linear_transform,
    inverse_targets,
)
from gazetrack.core.config import CalibrationConfig
from gazetrack.core.schema import (
    CalibrationPoint,
    CalibrationPosition,
    CalibrationTransform,
    GazeSample,
)

from .conftest import face_sample

LEFT, CENTER, RIGHT = CalibrationPosition.LEFT, CalibrationPosition.CENTER, CalibrationPosition.RIGHT


def _points(left, center, right, n=15):
    return [
        CalibrationPoint(LEFT, [left] * n),
        CalibrationPoint(CENTER, [center] * n),
        CalibrationPoint(RIGHT, [right] * n),
    ]


# -------------------------
# Fit
# -------------------------


def test_typical_means_give_positive_slope_small_intercept():
    t = fit_linear_transform(_points(-0.85, 0.01, 0.90))
    assert t.slope > 0
    assert abs(t.intercept) < 0.1


def test_fit_round_trips_its_own_means():
    means = (-0.85, 0.01, 0.90)
    t = fit_linear_transform(_points(*means))
    for measured, target in zip(means, (-1.0, 0.0, 1.0)):
        assert apply_calibration(measured, t) == pytest.approx(target, abs=0.05)


def test_two_equal_means_still_finite():
    t = fit_linear_transform(_points(0.5, 0.5, 0.9))
    assert math.isfinite(t.slope)
    assert math.isfinite(t.intercept)


def test_identical_means_use_range_fallback():
    t = fit_linear_transform(_points(0.5, 0.5, 0.5))
    assert t.slope == pytest.approx(1.0)
    assert t.intercept == pytest.approx(-0.5)


def test_missing_position_is_incomplete():
    points = _points(-0.5, 0.0, 0.5)[:2]
    with pytest.raises(CalibrationError) as ei:
        fit_linear_transform(points)
    assert ei.value.reason is CalibrationFailure.INCOMPLETE


def test_too_few_samples_is_incomplete():
    points = _points(-0.5, 0.0, 0.5)
    points[1] = CalibrationPoint(CENTER, [0.0] * 4)
    with pytest.raises(CalibrationError) as ei:
        fit_linear_transform(points)
    assert ei.value.reason is CalibrationFailure.INCOMPLETE
    assert "center" in ei.value.detail


def test_non_finite_means_are_dropped():
    t = fit_linear_transform(_points(-0.5, float("nan"), 0.5))
    assert t.slope == pytest.approx(2.0)
    assert t.intercept == pytest.approx(0.0)


def test_fewer_than_two_finite_means_is_insufficient():
    with pytest.raises(CalibrationError) as ei:
        fit_linear_transform(_points(float("nan"), float("nan"), 0.5))
    assert ei.value.reason is CalibrationFailure.INSUFFICIENT_DATA


# -------------------------
# Apply / introspection
# -------------------------


@pytest.mark.parametrize("x", [-3.0, -1.0, -0.25, 0.0, 0.7, 1.0, 42.0])
def test_no_transform_is_identity(x):
    assert apply_calibration(x) == x
    assert CalibrationApplier().apply(x) == x


def test_apply_clamps_output():
    applier = CalibrationApplier(CalibrationTransform(slope=4.0, intercept=0.5))
    assert applier.is_calibrated
    assert applier.apply(1.0) == 1.0
    assert applier.apply(-1.0) == -1.0
    assert applier.apply(0.0) == pytest.approx(0.5)


def test_transform_rejects_non_finite():
    with pytest.raises(ValueError):
        CalibrationTransform(slope=float("inf"), intercept=0.0)


def test_inverse_targets():
    assert inverse_targets(None) == DEFAULT_TARGETS
    assert inverse_targets(CalibrationTransform(0.0, 0.3)) == DEFAULT_TARGETS

    inv = inverse_targets(CalibrationTransform(slope=2.0, intercept=0.2))
    assert inv["left"] == pytest.approx(-0.6)
    assert inv["center"] == pytest.approx(-0.1)
    assert inv["right"] == pytest.approx(0.4)


def test_calibration_info():
    assert calibration_info(None)["is_calibrated"] is False
    info = calibration_info(CalibrationTransform(1.5, -0.1))
    assert info == {"is_calibrated": True, "slope": 1.5, "intercept": -0.1}


# -------------------------
# Engine
# -------------------------


def _feed(engine, value, n):
    outcome = None
    for _ in range(n):
        outcome = engine.record_sample(face_sample(value)) or outcome
    return outcome


def test_engine_starts_idle_and_ignores_samples():
    engine = CalibrationEngine()
    assert isinstance(engine.current_state(), Idle)
    assert engine.record_sample(face_sample(0.2)) is None
    assert engine.active_transform is None


def test_full_sweep_completes():
    saved = []
    engine = CalibrationEngine(on_complete=saved.append)

    state = engine.begin()
    assert state == Collecting(LEFT)

    assert _feed(engine, -0.6, 15) is None
    assert engine.current_state() == Collecting(CENTER)
    assert _feed(engine, 0.0, 15) is None
    assert engine.current_state().position is RIGHT

    outcome = _feed(engine, 0.6, 15)
    assert outcome is not None and outcome.ok
    assert outcome.transform.slope == pytest.approx(1.0 / 0.6)
    assert outcome.transform.intercept == pytest.approx(0.0, abs=1e-9)

    state = engine.current_state()
    assert isinstance(state, Complete)
    assert state.transform == outcome.transform
    assert engine.active_transform == outcome.transform
    assert saved == [outcome.transform]
    assert engine.progress() is None


def test_collecting_snapshot_carries_samples():
    engine = CalibrationEngine()
    engine.begin()
    _feed(engine, -0.4, 3)
    state = engine.current_state()
    assert state.samples == (-0.4, -0.4, -0.4)
    assert engine.progress() == (LEFT, 3, 15)


def test_low_confidence_and_faceless_samples_are_ignored():
    engine = CalibrationEngine()
    engine.begin()
    engine.record_sample(face_sample(-0.5, confidence=0.3))
    engine.record_sample(GazeSample.neutral(0, 0))
    engine.record_sample(face_sample(-0.5, confidence=0.31))
    assert engine.progress() == (LEFT, 1, 15)


def test_early_finish_resumes_collection_at_short_target():
    engine = CalibrationEngine()
    engine.begin()
    _feed(engine, -0.6, 15)
    _feed(engine, 0.0, 2)

    outcome = engine.finish()
    assert not outcome.ok
    assert outcome.reason is CalibrationFailure.INCOMPLETE
    assert engine.current_state() == Collecting(CENTER, (0.0, 0.0))
    assert engine.active_transform is None

    # already-full LEFT is not re-collected
    _feed(engine, 0.0, 13)
    assert engine.current_state().position is RIGHT
    assert _feed(engine, 0.6, 15).ok


def test_finish_with_enough_samples_fits_now():
    engine = CalibrationEngine(CalibrationConfig(samples_per_position=15, min_samples=5))
    engine.begin()
    _feed(engine, -0.6, 15)
    _feed(engine, 0.0, 15)
    _feed(engine, 0.6, 6)
    outcome = engine.finish()
    assert outcome.ok
    assert isinstance(engine.current_state(), Complete)


def test_finish_without_run_is_incomplete():
    outcome = CalibrationEngine().finish()
    assert not outcome.ok
    assert outcome.reason is CalibrationFailure.INCOMPLETE


def test_cancel_returns_to_idle_and_keeps_previous_transform():
    previous = CalibrationTransform(1.2, 0.05)
    engine = CalibrationEngine(transform=previous)
    engine.begin()
    _feed(engine, -0.6, 15)
    assert isinstance(engine.cancel(), Idle)
    assert engine.points == []
    assert engine.active_transform == previous


def test_persist_failure_is_surfaced_and_not_published():
    def boom(_transform):
        raise OSError("disk full")

    engine = CalibrationEngine(on_complete=boom)
    engine.begin()
    _feed(engine, -0.6, 15)
    _feed(engine, 0.0, 15)
    _feed(engine, 0.6, 14)
    with pytest.raises(OSError):
        engine.record_sample(face_sample(0.6))

    state = engine.current_state()
    assert isinstance(state, Failed)
    assert state.reason is CalibrationFailure.PERSIST_FAILED
    assert engine.active_transform is None


def test_boundary_frames_are_counted_once():
    cfg = CalibrationConfig(samples_per_position=50, min_samples=5)
    engine = CalibrationEngine(cfg)
    engine.begin()

    def worker(value):
        for _ in range(60):
            engine.record_sample(face_sample(value))

    threads = [threading.Thread(target=worker, args=(v,)) for v in (-0.5, 0.5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # 120 frames: 50 left + 50 center + 20 right, none lost or duplicated
    state = engine.current_state()
    assert state.position is RIGHT
    assert len(state.samples) == 20
    counts = [len(p.samples) for p in engine.points]
    assert counts == [50, 50, 20]
