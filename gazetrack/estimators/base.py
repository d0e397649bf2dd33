from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Tuple

import numpy as np

from ..core.schema import DetectionTensor, EyeRegion


class FaceModel(Protocol):
    """Interface for face-localization backends.

    Backends take an HxWx3 RGB uint8 frame and return the raw, un-thresholded
    DetectionTensor for that frame. Any failure propagates to the caller.
    """

    def __call__(self, frame_rgb: np.ndarray) -> DetectionTensor:
        ...


class IrisLocalizer(Protocol):
    """Interface for iris localization strategies.

    Given an RGB frame and one eye region, return the estimated horizontal
    iris position in image pixels. Must not raise on degenerate regions.
    """

    def estimate_iris_x(self, frame_rgb: np.ndarray, region: EyeRegion) -> float:
        ...


@dataclass(frozen=True)
class EstimatorSpec:
    """Small descriptor used for listing/backends/metadata."""

    name: str
    variants: Tuple[str, ...] = ()
    description: str = ""
