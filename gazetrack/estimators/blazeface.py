from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

import cv2
import numpy as np
import torch

from ..core.schema import DetectionTensor
from .base import FaceModel

logger = logging.getLogger(__name__)


@dataclass
class BlazeFaceModel(FaceModel):
    """TorchScript BlazeFace-style detector returning raw tensors.

    Notes:
      - Never thresholds or decodes; that is DetectionDecoder's job.
      - Accepts RGB frames of any size; resizes to a square input of
        ``input_size`` and scales pixels to [0, 1] float32.
      - The module must return (regressors, classificators), e.g.
        (1, 896, 16) and (1, 896, 1).
      - ``channels_last`` feeds NHWC instead of NCHW for exports that expect it.
    """

    weights: Path
    device: Union[str, torch.device] = "cpu"
    input_size: int = 128
    channels_last: bool = False

    # internal (initialized in __post_init__)
    _module: Any = None

    def __post_init__(self) -> None:
        if isinstance(self.device, str):
            self.device = torch.device(self.device)

        path = Path(self.weights)
        if not path.exists():
            raise FileNotFoundError(f"Face model weights not found: {path}")

        self._module = torch.jit.load(str(path), map_location=self.device)
        self._module.eval()
        logger.info("Face model loaded from %s on %s", path, self.device)

    def preprocess(self, frame_rgb: np.ndarray) -> torch.Tensor:
        if not isinstance(frame_rgb, np.ndarray) or frame_rgb.ndim != 3 or frame_rgb.shape[2] != 3:
            raise ValueError("frame_rgb must be an HxWx3 ndarray (RGB)")
        size = int(self.input_size)
        chip = cv2.resize(frame_rgb, (size, size), interpolation=cv2.INTER_LINEAR)
        arr = chip.astype(np.float32) / 255.0
        if not self.channels_last:
            arr = np.transpose(arr, (2, 0, 1))
        return torch.from_numpy(np.ascontiguousarray(arr)).unsqueeze(0).to(self.device)

    def __call__(self, frame_rgb: np.ndarray) -> DetectionTensor:
        if self._module is None:
            raise RuntimeError("BlazeFaceModel is not initialized")

        batch = self.preprocess(frame_rgb)
        with torch.inference_mode():
            out = self._module(batch)

        if not isinstance(out, (list, tuple)) or len(out) < 2:
            raise RuntimeError("Face model must return (regressors, classificators)")

        regressors = out[0].detach().cpu().numpy()
        classificators = out[1].detach().cpu().numpy()
        return DetectionTensor(regressors=regressors, classificators=classificators)


def build_blazeface_model(
    *,
    weights: Path | str,
    device: Union[str, torch.device] = "cpu",
    input_size: int = 128,
    channels_last: bool = False,
) -> BlazeFaceModel:
    """Factory used by the registry."""
    return BlazeFaceModel(
        weights=Path(weights),
        device=device,
        input_size=int(input_size),
        channels_last=bool(channels_last),
    )
