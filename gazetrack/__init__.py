"""
gazetrack (module: gazetrack)

Horizontal gaze tracking from a single camera: a face detector plus fixed
eye-region heuristics give a normalized left/right gaze value per frame,
optionally corrected by a three-target linear calibration.

- Runs on raw model tensors; decoding and geometry are plain numpy.
- Returns results in-memory; writes artifacts only when enabled.
"""
from __future__ import annotations

from typing import Any

from .core.calibration import CalibrationEngine, apply_calibration, fit_linear_transform
from .core.config import TrackerConfig, load_config
from .core.schema import CalibrationPosition, CalibrationTransform, DetectionTensor, GazeSample

__all__ = [
    "track_gaze_video",
    "get_face_model",
    "GazeTracker",
    "GazePipeline",
    "CalibrationEngine",
    "CalibrationPosition",
    "CalibrationTransform",
    "DetectionTensor",
    "GazeSample",
    "TrackerConfig",
    "apply_calibration",
    "fit_linear_transform",
    "load_config",
    "__version__",
]

__version__ = "0.1.0"


def track_gaze_video(*args: Any, **kwargs: Any):
    """Lazy proxy to :func:`gazetrack.core.pipeline.track_gaze_video`."""
    from .core.pipeline import track_gaze_video as _impl

    return _impl(*args, **kwargs)


def get_face_model(*args: Any, **kwargs: Any):
    """Lazy proxy to :func:`gazetrack.estimators.registry.get_face_model`."""
    from .estimators import get_face_model as _impl

    return _impl(*args, **kwargs)


def __getattr__(name: str) -> Any:
    # tracker imports the estimator registry (torch)
    if name in ("GazeTracker", "GazePipeline"):
        from .core import tracker

        return getattr(tracker, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
