from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pytest

from gazetrack.core.schema import DetectionTensor, FaceDetection, GazeSample

NUM_DETECTIONS = 896
NUM_COORDS = 16


def make_tensor(
    best: Optional[int] = None,
    box: Sequence[float] = (64.0, 64.0, 64.0, 64.0),
    logit: float = 4.0,
    background_logit: float = -10.0,
) -> DetectionTensor:
    """Detection tensor with one strong row (or none when best is None)."""
    reg = np.zeros((1, NUM_DETECTIONS, NUM_COORDS), dtype=np.float32)
    cls = np.full((1, NUM_DETECTIONS, 1), background_logit, dtype=np.float32)
    if best is not None:
        reg[0, best, :4] = box
        cls[0, best, 0] = logit
    return DetectionTensor(reg, cls)


def face_sample(x: float, confidence: float = 0.9, timestamp: int = 0) -> GazeSample:
    return GazeSample(
        normalized_x=x,
        raw_iris_x=100.0,
        left_corner_x=80.0,
        right_corner_x=120.0,
        confidence=confidence,
        timestamp=timestamp,
        high_res_timestamp=timestamp * 1_000_000,
        face=FaceDetection(100.0, 100.0, 80.0, 80.0, confidence),
    )


class FakeFaceModel:
    """Returns a fixed tensor and counts calls."""

    def __init__(self, tensor: DetectionTensor):
        self.tensor = tensor
        self.calls = 0

    def __call__(self, frame_rgb: np.ndarray) -> DetectionTensor:
        self.calls += 1
        return self.tensor


class BrokenFaceModel:
    def __call__(self, frame_rgb: np.ndarray) -> DetectionTensor:
        raise RuntimeError("interpreter closed")


class FixedClock:
    def __init__(self, start_ms: int = 1_000):
        self.ms = start_ms

    def __call__(self):
        return self.ms, self.ms * 1_000_000


@pytest.fixture
def gray_frame() -> np.ndarray:
    return np.full((256, 256, 3), 200, dtype=np.uint8)


@pytest.fixture
def eye_frame() -> np.ndarray:
    """256x256 frame for a face box centred at (128, 128), width 128.

    Dark vertical stripes sit 5 px to the right of each eye centre
    (left eye centre 102.4, right eye centre 153.6).
    """
    frame = np.full((256, 256, 3), 200, dtype=np.uint8)
    frame[60:160, 107, :] = 10
    frame[60:160, 158, :] = 10
    return frame
