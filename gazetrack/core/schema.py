from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

# -------------------------
# Stable JSON keys (session / calibration payloads)
# -------------------------
K_SCHEMA_VERSION = "schema_version"

K_SLOPE = "slope"
K_INTERCEPT = "intercept"
K_CALIBRATION = "calibration"

K_SESSION_ID = "session_id"
K_TIMESTAMP = "timestamp"
K_HIGH_RES_TIMESTAMP = "high_res_timestamp"
K_GAZE_RAW = "gaze_raw"
K_GAZE_CALIBRATED = "gaze_calibrated"
K_IRIS_X = "iris_x"
K_EYE_CORNERS = "eye_corners"
K_LEFT_X = "left_x"
K_RIGHT_X = "right_x"
K_CONFIDENCE = "confidence"
K_FRAME_NUMBER = "frame_number"
K_DATA = "data"
K_SAMPLING_RATE = "sampling_rate"

__all__ = [
    # keys
    "K_SCHEMA_VERSION",
    "K_SLOPE",
    "K_INTERCEPT",
    "K_CALIBRATION",
    "K_SESSION_ID",
    "K_TIMESTAMP",
    "K_HIGH_RES_TIMESTAMP",
    "K_GAZE_RAW",
    "K_GAZE_CALIBRATED",
    "K_IRIS_X",
    "K_EYE_CORNERS",
    "K_LEFT_X",
    "K_RIGHT_X",
    "K_CONFIDENCE",
    "K_FRAME_NUMBER",
    "K_DATA",
    "K_SAMPLING_RATE",
    # types
    "DetectionTensor",
    "FaceDetection",
    "EyeRegion",
    "IrisEstimate",
    "GazeSample",
    "CalibrationPosition",
    "CalibrationPoint",
    "CalibrationTransform",
    # helpers
    "clamp",
    "clip_window_to_image",
]


# -------------------------
# Model output
# -------------------------

@dataclass(frozen=True)
class DetectionTensor:
    """Raw face-model output for one frame.

    - regressors: (N, K) float array, K >= 4; columns 0..3 are cx, cy, w, h
      in model-input pixels, remaining columns are keypoints.
    - classificators: (N,) raw logits.

    Leading batch axes of size 1 (e.g. (1, N, K) / (1, N, 1)) are squeezed.
    """

    regressors: np.ndarray
    classificators: np.ndarray

    def __post_init__(self) -> None:
        reg = np.array(self.regressors, dtype=np.float64)
        cls = np.array(self.classificators, dtype=np.float64)
        while reg.ndim > 2 and reg.shape[0] == 1:
            reg = reg[0]
        if cls.ndim != 1:
            cls = cls.reshape(-1)
        if reg.ndim != 2 or reg.shape[1] < 4:
            raise ValueError(f"regressors must be (N, K>=4); got shape {reg.shape}")
        if cls.ndim != 1 or cls.shape[0] != reg.shape[0]:
            raise ValueError(
                f"classificators must hold one logit per regressor row; "
                f"got {cls.shape} for {reg.shape[0]} rows"
            )
        reg.setflags(write=False)
        cls.setflags(write=False)
        object.__setattr__(self, "regressors", reg)
        object.__setattr__(self, "classificators", cls)

    def __len__(self) -> int:
        return int(self.classificators.shape[0])


# -------------------------
# Per-frame geometry
# -------------------------

@dataclass(frozen=True)
class FaceDetection:
    """Best face box, already rescaled to image pixels."""

    center_x: float
    center_y: float
    width: float
    height: float
    confidence: float

    @property
    def left(self) -> float:
        return self.center_x - self.width / 2.0

    @property
    def top(self) -> float:
        return self.center_y - self.height / 2.0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def xyxy(self) -> Tuple[float, float, float, float]:
        return self.left, self.top, self.right, self.bottom


@dataclass(frozen=True)
class EyeRegion:
    center_x: float
    center_y: float
    search_radius: float
    inner_corner_x: float
    outer_corner_x: float


@dataclass(frozen=True)
class IrisEstimate:
    x: float


@dataclass(frozen=True)
class GazeSample:
    """One processed frame.

    normalized_x is the raw gaze in [-1, 1]; left/right_corner_x are the
    sorted outer eye corners; raw_iris_x is the mean of both iris estimates.
    A frame without a face yields :meth:`neutral`.
    """

    normalized_x: float
    raw_iris_x: float
    left_corner_x: float
    right_corner_x: float
    confidence: float
    timestamp: int                 # epoch milliseconds
    high_res_timestamp: int        # monotonic nanoseconds
    left_iris_x: float = 0.0
    right_iris_x: float = 0.0
    eye_y: float = 0.0
    face: Optional[FaceDetection] = None
    regions: Optional[Tuple[EyeRegion, EyeRegion]] = None
    calibrated_x: Optional[float] = None

    @property
    def has_face(self) -> bool:
        return self.face is not None

    @classmethod
    def neutral(cls, timestamp: int, high_res_timestamp: int) -> "GazeSample":
        return cls(
            normalized_x=0.0,
            raw_iris_x=0.0,
            left_corner_x=0.0,
            right_corner_x=0.0,
            confidence=0.0,
            timestamp=timestamp,
            high_res_timestamp=high_res_timestamp,
        )


# -------------------------
# Calibration records
# -------------------------

class CalibrationPosition(Enum):
    LEFT = -1
    CENTER = 0
    RIGHT = 1

    @property
    def target_value(self) -> float:
        return float(self.value)


@dataclass
class CalibrationPoint:
    position: CalibrationPosition
    samples: List[float] = field(default_factory=list)

    @property
    def target_value(self) -> float:
        return self.position.target_value

    def mean(self) -> float:
        if not self.samples:
            return math.nan
        return float(np.mean(np.asarray(self.samples, dtype=np.float64)))


@dataclass(frozen=True)
class CalibrationTransform:
    slope: float
    intercept: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.slope) and math.isfinite(self.intercept)):
            raise ValueError(f"transform must be finite; got slope={self.slope!r}, intercept={self.intercept!r}")

    @classmethod
    def identity(cls) -> "CalibrationTransform":
        return cls(slope=1.0, intercept=0.0)

    def to_dict(self) -> dict:
        return {K_SLOPE: float(self.slope), K_INTERCEPT: float(self.intercept)}

    @classmethod
    def from_dict(cls, data: dict) -> "CalibrationTransform":
        return cls(slope=float(data[K_SLOPE]), intercept=float(data[K_INTERCEPT]))


# -------------------------
# Geometry helpers
# -------------------------

def clamp(v: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, v))


def clip_window_to_image(
    cx: float,
    cy: float,
    half: float,
    size: Sequence[int],
) -> Tuple[int, int, int, int]:
    """Square window around (cx, cy) clipped to an image of size (w, h).

    Returns integer (x1, y1, x2, y2) with exclusive x2/y2; may be empty.
    """
    w, h = int(size[0]), int(size[1])
    if not (math.isfinite(cx) and math.isfinite(cy) and math.isfinite(half)):
        return 0, 0, 0, 0
    x1 = max(0, int(cx - half))
    y1 = max(0, int(cy - half))
    x2 = min(w, int(cx + half))
    y2 = min(h, int(cy + half))
    return x1, y1, x2, y2
