from __future__ import annotations

import numpy as np
import pytest

from gazetrack.core.calibration import Collecting, Complete
from gazetrack.core.config import TrackerConfig
from gazetrack.core.normalize import normalize_gaze
from gazetrack.core.schema import CalibrationPosition, CalibrationTransform
from gazetrack.core.tracker import GazePipeline, GazeTracker, ModelUnavailableError

from .conftest import BrokenFaceModel, FakeFaceModel, FixedClock, make_tensor


def _tracker(tensor, **kwargs):
    pipeline = GazePipeline(FakeFaceModel(tensor), TrackerConfig(), clock=FixedClock())
    return GazeTracker(pipeline, **kwargs)


def test_no_face_gives_neutral_sample(gray_frame):
    sample = _tracker(make_tensor(best=None)).process_frame(gray_frame)
    assert not sample.has_face
    assert sample.normalized_x == 0.0
    assert sample.confidence == 0.0
    assert sample.timestamp == 1_000
    assert sample.high_res_timestamp == 1_000_000_000
    assert sample.calibrated_x is None


def test_face_frame_produces_normalized_gaze(eye_frame):
    # model box (64, 64, 64, 64) on a 256 frame -> image box centred at 128, width 128
    sample = _tracker(make_tensor(best=100)).process_frame(eye_frame)

    assert sample.has_face
    assert sample.face.center_x == pytest.approx(128.0)
    assert sample.face.width == pytest.approx(128.0)
    assert sample.left_iris_x == pytest.approx(107.0)
    assert sample.right_iris_x == pytest.approx(158.0)
    assert sample.raw_iris_x == pytest.approx(132.5)

    left, right = sample.regions
    expected = normalize_gaze(132.5, left.outer_corner_x, right.outer_corner_x).normalized_x
    assert sample.normalized_x == pytest.approx(expected)
    assert 0.0 < sample.normalized_x < 0.5
    assert sample.left_corner_x < sample.right_corner_x
    assert sample.eye_y == pytest.approx(64.0 + 0.35 * 128.0)


def test_missing_model_raises():
    pipeline = GazePipeline(None, TrackerConfig())
    with pytest.raises(ModelUnavailableError):
        pipeline.process_frame(np.zeros((32, 32, 3), dtype=np.uint8))


def test_failing_model_raises_model_unavailable(gray_frame):
    pipeline = GazePipeline(BrokenFaceModel(), TrackerConfig())
    with pytest.raises(ModelUnavailableError) as ei:
        pipeline.process_frame(gray_frame)
    assert isinstance(ei.value.__cause__, RuntimeError)


def test_bad_frame_shape_raises():
    pipeline = GazePipeline(FakeFaceModel(make_tensor()), TrackerConfig())
    with pytest.raises(ValueError):
        pipeline.process_frame(np.zeros((32, 32), dtype=np.uint8))


def test_process_detections_skips_model(eye_frame):
    model = FakeFaceModel(make_tensor())
    tracker = GazeTracker(GazePipeline(model, TrackerConfig(), clock=FixedClock()))
    sample = tracker.process_detections(eye_frame, make_tensor(best=5))
    assert sample.has_face
    assert model.calls == 0


def test_loaded_transform_attaches_calibrated_gaze(eye_frame):
    from gazetrack.core.calibration import CalibrationEngine

    transform = CalibrationTransform(slope=2.0, intercept=0.1)
    tracker = _tracker(make_tensor(best=100), engine=CalibrationEngine(transform=transform))
    sample = tracker.process_frame(eye_frame)

    assert tracker.get_active_transform() == transform
    assert sample.calibrated_x == pytest.approx(min(1.0, 2.0 * sample.normalized_x + 0.1))
    assert tracker.apply_calibration(0.2) == pytest.approx(0.5)


def test_uncalibrated_apply_is_identity():
    tracker = _tracker(make_tensor())
    assert tracker.get_active_transform() is None
    assert tracker.apply_calibration(-0.37) == -0.37


def test_recorded_frames_drive_calibration(eye_frame):
    tracker = _tracker(make_tensor(best=100))
    assert tracker.begin_calibration() == Collecting(CalibrationPosition.LEFT)

    for _ in range(15 * 3):
        tracker.record_calibration_sample(tracker.process_frame(eye_frame))

    state = tracker.current_calibration_state()
    # every frame has the same raw gaze: degenerate but still a finite transform
    assert isinstance(state, Complete)
    assert tracker.get_active_transform() is not None


def test_process_frame_alone_does_not_feed_calibration(eye_frame):
    tracker = _tracker(make_tensor(best=100))
    tracker.begin_calibration()
    for _ in range(3):
        tracker.process_frame(eye_frame)
    assert tracker.engine.progress() == (CalibrationPosition.LEFT, 0, 15)


def test_each_frame_is_counted_once(eye_frame):
    tracker = _tracker(make_tensor(best=100))
    tracker.begin_calibration()
    for _ in range(3):
        sample = tracker.process_frame(eye_frame)
        tracker.record_calibration_sample(sample)
    assert tracker.engine.progress() == (CalibrationPosition.LEFT, 3, 15)


def test_cancel_via_tracker(gray_frame):
    tracker = _tracker(make_tensor(best=100))
    tracker.begin_calibration()
    tracker.record_calibration_sample(tracker.process_frame(gray_frame))
    tracker.cancel_calibration()
    assert tracker.finish_calibration().ok is False
