from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from .schema import K_CALIBRATION, K_SCHEMA_VERSION, CalibrationTransform

logger = logging.getLogger(__name__)

CALIBRATION_SCHEMA = "gazetrack-calibration-v1"


# -------------------------
# JSON I/O
# -------------------------

def load_json(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_json(data: Dict[str, Any], path: str | Path) -> None:
    """Write JSON via a sibling temp file and os.replace, so readers see old or new, never half."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# -------------------------
# Calibration persistence
# -------------------------

class CalibrationStore:
    """File-backed home for the single persisted CalibrationTransform."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Optional[CalibrationTransform]:
        if not self.path.exists():
            return None
        data = load_json(self.path)
        block = data.get(K_CALIBRATION)
        if not isinstance(block, dict):
            raise ValueError(f"{self.path}: missing {K_CALIBRATION!r} block")
        transform = CalibrationTransform.from_dict(block)
        logger.info("Calibration loaded from %s: %s", self.path, transform)
        return transform

    def save(self, transform: CalibrationTransform) -> None:
        save_json({K_SCHEMA_VERSION: CALIBRATION_SCHEMA, K_CALIBRATION: transform.to_dict()}, self.path)
        logger.info("Calibration saved to %s", self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.info("Calibration cleared at %s", self.path)


# -------------------------
# Video I/O
# -------------------------

class VideoReader:
    def __init__(self, path: str | Path):
        self.path = str(path)
        self.cap = cv2.VideoCapture(self.path)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video: {self.path}")
        self._width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        self._height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        self._frame_count = int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        fps = float(self.cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._fps = fps if fps > 0 else 30.0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def fps(self) -> float:
        return self._fps

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def read(self) -> Tuple[bool, np.ndarray]:
        return self.cap.read()

    def release(self) -> None:
        try:
            self.cap.release()
        except Exception:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class VideoWriter:
    def __init__(
        self,
        path: str | Path,
        fps: float,
        size: tuple[int, int],
        *,
        fourcc: str = "mp4v",
    ):
        self.path = str(path)
        self._size = (int(size[0]), int(size[1]))
        self._fps = float(fps)
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        code = cv2.VideoWriter_fourcc(*fourcc)
        self.writer = cv2.VideoWriter(self.path, code, self._fps, self._size)
        if not self.writer.isOpened():
            raise RuntimeError(f"Failed to open writer: {self.path}")

    def write(self, frame: np.ndarray) -> None:
        if frame is None:
            return
        h, w = frame.shape[:2]
        if (w, h) != self._size:
            frame = cv2.resize(frame, self._size)
        self.writer.write(frame)

    def release(self) -> None:
        try:
            self.writer.release()
        except Exception:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
