from __future__ import annotations

import pytest

from gazetrack.core.calibration import DEFAULT_TARGETS
from gazetrack.core.schema import CalibrationTransform, GazeSample
from gazetrack.core.session import STATUS_COMPLETED, STATUS_PAUSED, SessionRecorder

from .conftest import face_sample


class StepClock:
    def __init__(self, start: int = 10_000):
        self.now = start

    def __call__(self) -> int:
        return self.now


def test_records_only_face_frames_while_recording():
    clock = StepClock()
    rec = SessionRecorder(clock=clock)
    sid = rec.start()

    assert rec.add_sample(face_sample(0.1, timestamp=10_000))
    assert not rec.add_sample(GazeSample.neutral(10_033, 0))
    rec.pause()
    assert rec.metadata.status == STATUS_PAUSED
    assert not rec.add_sample(face_sample(0.2))
    rec.resume()
    assert rec.add_sample(face_sample(0.3, timestamp=10_066))

    clock.now = 12_000
    meta = rec.stop()
    assert meta.session_id == sid
    assert meta.status == STATUS_COMPLETED
    assert meta.total_frames == 2
    assert meta.duration == 2_000
    assert [p["frame_number"] for p in rec.data] == [1, 2]
    assert rec.data[0]["gaze_calibrated"] is None
    assert rec.data[0]["eye_corners"] == {"left_x": 80.0, "right_x": 120.0}


def test_start_twice_and_stop_without_session_raise():
    rec = SessionRecorder(clock=StepClock())
    with pytest.raises(RuntimeError):
        rec.stop()
    rec.start()
    with pytest.raises(RuntimeError):
        rec.start()
    rec.stop()
    rec.start()  # a completed session can be followed by a new one


def test_session_uses_transform_snapshot():
    t = CalibrationTransform(slope=2.0, intercept=0.0)
    rec = SessionRecorder(clock=StepClock())
    rec.start(t)
    rec.add_sample(face_sample(0.25))
    rec.add_sample(face_sample(0.9))

    assert rec.data[0]["gaze_calibrated"] == pytest.approx(0.5)
    assert rec.data[1]["gaze_calibrated"] == 1.0
    assert rec.metadata.to_dict()["calibration_used"] == {"slope": 2.0, "intercept": 0.0}


def test_sampling_rate_and_export():
    clock = StepClock(0)
    rec = SessionRecorder(clock=clock)
    rec.start(CalibrationTransform(slope=2.0, intercept=0.2))
    for i in range(30):
        rec.add_sample(face_sample(0.1, timestamp=i * 33))
    clock.now = 1_000
    rec.stop()

    assert rec.sampling_rate() == 30.0
    payload = rec.export_payload()
    assert payload["sampling_rate"] == 30.0
    assert payload["calibration"]["center"] == pytest.approx(-0.1)
    assert payload["data"][1] == {"timestamp": 33, "x": pytest.approx(0.4)}


def test_export_without_calibration_uses_raw_and_defaults():
    rec = SessionRecorder(clock=StepClock())
    rec.start()
    rec.add_sample(face_sample(-0.3, timestamp=5))
    payload = rec.export_payload()
    assert payload["calibration"] == DEFAULT_TARGETS
    assert payload["data"] == [{"timestamp": 5, "x": -0.3}]


def test_summary_requires_a_session():
    rec = SessionRecorder(clock=StepClock())
    with pytest.raises(RuntimeError):
        rec.summary()
    rec.start()
    assert rec.summary()["calibration_used"] is False


def test_pause_and_resume_require_the_right_state():
    rec = SessionRecorder(clock=StepClock())
    with pytest.raises(RuntimeError, match="pause"):
        rec.pause()
    with pytest.raises(RuntimeError, match="resume"):
        rec.resume()

    rec.start()
    with pytest.raises(RuntimeError, match="resume"):
        rec.resume()
    rec.pause()
    with pytest.raises(RuntimeError, match="pause"):
        rec.pause()
    rec.resume()
    rec.stop()
    with pytest.raises(RuntimeError):
        rec.pause()
