"""
Per-frame gaze processing and the public tracker facade.

    image -> face model -> DetectionDecoder -> EyeRegionEstimator
          -> IrisLocalizer (x2) -> GazeNormalizer -> GazeSample

Frame processing is synchronous and holds no cross-frame state. The tracker
adds the calibration side: it attaches calibrated gaze from the current
transform. Frames reach the CalibrationEngine only through
record_calibration_sample(); process_frame never feeds it.
"""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional, Tuple

import numpy as np

from ..estimators import FaceModel, IrisLocalizer, get_iris_localizer
from .calibration import (
    CalibrationEngine,
    CalibrationOutcome,
    CalibrationState,
    apply_calibration,
)
from .config import TrackerConfig
from .decode import DetectionDecoder
from .eyes import EyeRegionEstimator
from .normalize import GazeNormalizer
from .schema import CalibrationTransform, DetectionTensor, GazeSample

logger = logging.getLogger(__name__)

Clock = Callable[[], Tuple[int, int]]


class ModelUnavailableError(RuntimeError):
    """The face model is missing or failed; no gaze can be estimated."""


def _now() -> Tuple[int, int]:
    return int(time.time() * 1000), time.monotonic_ns()


def _check_frame(frame_rgb: np.ndarray) -> None:
    if not isinstance(frame_rgb, np.ndarray) or frame_rgb.ndim != 3 or frame_rgb.shape[2] != 3:
        raise ValueError("frame_rgb must be an HxWx3 ndarray (RGB)")


class GazePipeline:
    """Detection decode -> eye regions -> iris -> normalized raw gaze."""

    def __init__(
        self,
        face_model: Optional[FaceModel],
        config: Optional[TrackerConfig] = None,
        *,
        iris_localizer: Optional[IrisLocalizer] = None,
        clock: Clock = _now,
    ):
        self.config = config or TrackerConfig()
        self.face_model = face_model
        self.decoder = DetectionDecoder(self.config.detector)
        self.eyes = EyeRegionEstimator(self.config.eyes)
        self.iris = iris_localizer or get_iris_localizer(self.config.iris_localizer, config=self.config.iris)
        self.normalizer = GazeNormalizer(self.config.span_epsilon)
        self.clock = clock

    def process_frame(self, frame_rgb: np.ndarray) -> GazeSample:
        """Run the face model and the geometry stages on one RGB frame.

        Raises ModelUnavailableError when no model is configured or the model
        call fails. A frame without a face returns GazeSample.neutral().
        """
        _check_frame(frame_rgb)
        if self.face_model is None:
            raise ModelUnavailableError("No face model configured")
        try:
            tensor = self.face_model(frame_rgb)
        except Exception as e:
            raise ModelUnavailableError(f"Face model failed: {e}") from e
        return self.process_detections(frame_rgb, tensor)

    def process_detections(self, frame_rgb: np.ndarray, tensor: DetectionTensor) -> GazeSample:
        _check_frame(frame_rgb)
        H, W = frame_rgb.shape[:2]
        ts, hr_ts = self.clock()

        face = self.decoder.decode(tensor, W, H)
        if face is None:
            return GazeSample.neutral(ts, hr_ts)

        left, right = self.eyes.estimate(face)
        left_iris = float(self.iris.estimate_iris_x(frame_rgb, left))
        right_iris = float(self.iris.estimate_iris_x(frame_rgb, right))
        iris_x = (left_iris + right_iris) / 2.0

        gaze = self.normalizer.normalize(iris_x, left.outer_corner_x, right.outer_corner_x)
        return GazeSample(
            normalized_x=gaze.normalized_x,
            raw_iris_x=iris_x,
            left_corner_x=gaze.left_corner_x,
            right_corner_x=gaze.right_corner_x,
            confidence=face.confidence,
            timestamp=ts,
            high_res_timestamp=hr_ts,
            left_iris_x=left_iris,
            right_iris_x=right_iris,
            eye_y=left.center_y,
            face=face,
            regions=(left, right),
        )


class GazeTracker:
    """Public surface: frame processing, calibration control, calibrated gaze."""

    def __init__(
        self,
        pipeline: GazePipeline,
        engine: Optional[CalibrationEngine] = None,
    ):
        self.pipeline = pipeline
        self.engine = engine or CalibrationEngine(pipeline.config.calibration)

    # -- frames --

    def process_frame(self, frame_rgb: np.ndarray) -> GazeSample:
        sample = self.pipeline.process_frame(frame_rgb)
        return self._after_frame(sample)

    def process_detections(self, frame_rgb: np.ndarray, tensor: DetectionTensor) -> GazeSample:
        sample = self.pipeline.process_detections(frame_rgb, tensor)
        return self._after_frame(sample)

    def _after_frame(self, sample: GazeSample) -> GazeSample:
        transform = self.engine.active_transform
        if transform is None or not sample.has_face:
            return sample
        return replace(sample, calibrated_x=apply_calibration(sample.normalized_x, transform))

    # -- calibration --

    def begin_calibration(self) -> CalibrationState:
        return self.engine.begin()

    def record_calibration_sample(self, sample: GazeSample) -> Optional[CalibrationOutcome]:
        return self.engine.record_sample(sample)

    def current_calibration_state(self) -> CalibrationState:
        return self.engine.current_state()

    def cancel_calibration(self) -> CalibrationState:
        return self.engine.cancel()

    def finish_calibration(self) -> CalibrationOutcome:
        return self.engine.finish()

    def get_active_transform(self) -> Optional[CalibrationTransform]:
        return self.engine.active_transform

    def apply_calibration(self, raw: float) -> float:
        return apply_calibration(raw, self.engine.active_transform)
