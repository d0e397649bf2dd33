from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .config import DetectorConfig
from .schema import DetectionTensor, FaceDetection

logger = logging.getLogger(__name__)


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic function without overflow warnings for large |x|."""
    x = np.asarray(x, dtype=np.float64)
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class DetectionDecoder:
    """Pick the single best face from a raw detection tensor.

    The winning row is the first index holding the maximal logit; it is
    accepted only when its sigmoid score is strictly above ``score_threshold``.
    Box columns are (cx, cy, w, h) in model-input pixels and are rescaled to
    the image with independent x/y factors.
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()

    def decode(self, tensor: DetectionTensor, image_width: int, image_height: int) -> Optional[FaceDetection]:
        self._check_layout(tensor)

        # rank on logits: sigmoid saturates to 1.0 above ~37 and would tie
        logits = np.where(np.isnan(tensor.classificators), -np.inf, tensor.classificators)
        best = int(np.argmax(logits))
        best_score = float(sigmoid(logits[best]))

        if best_score <= self.config.score_threshold:
            logger.debug("No face above threshold %.3f (best %.4f)", self.config.score_threshold, best_score)
            return None

        cx, cy, w, h = (float(v) for v in tensor.regressors[best, :4])
        sx = float(image_width) / self.config.input_size
        sy = float(image_height) / self.config.input_size

        det = FaceDetection(
            center_x=cx * sx,
            center_y=cy * sy,
            width=w * sx,
            height=h * sy,
            confidence=best_score,
        )
        logger.debug("Face idx=%d score=%.4f box=%s", best, best_score, det.xyxy())
        return det

    def _check_layout(self, tensor: DetectionTensor) -> None:
        n, k = tensor.regressors.shape
        if n != self.config.num_detections or k != self.config.num_coords:
            raise ValueError(
                f"Detection tensor is ({n}, {k}); model configured for "
                f"({self.config.num_detections}, {self.config.num_coords})"
            )
