from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .schema import clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedGaze:
    normalized_x: float
    left_corner_x: float
    right_corner_x: float


def normalize_gaze(
    iris_x: float,
    left_outer_x: float,
    right_outer_x: float,
    *,
    epsilon: float = 1e-3,
) -> NormalizedGaze:
    """Map an iris x between the two outer eye corners onto [-1, 1].

    Corners are sorted first, so a swapped pair (extreme pose) still spans
    left to right. A span at or below ``epsilon`` yields 0 (center); so does
    a non-finite iris position.
    """
    lo = min(left_outer_x, right_outer_x)
    hi = max(left_outer_x, right_outer_x)
    span = hi - lo

    if not span > epsilon or not math.isfinite(iris_x):
        value = 0.0
    else:
        value = clamp(2.0 * (iris_x - lo) / span - 1.0, -1.0, 1.0)

    logger.debug("gaze iris=%.2f corners=(%.2f, %.2f) span=%.3f -> %.3f", iris_x, lo, hi, span, value)
    return NormalizedGaze(normalized_x=value, left_corner_x=lo, right_corner_x=hi)


class GazeNormalizer:
    def __init__(self, epsilon: float = 1e-3):
        self.epsilon = float(epsilon)

    def normalize(self, iris_x: float, left_outer_x: float, right_outer_x: float) -> NormalizedGaze:
        return normalize_gaze(iris_x, left_outer_x, right_outer_x, epsilon=self.epsilon)
