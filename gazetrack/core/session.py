from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .calibration import apply_calibration, inverse_targets
from .schema import (
    K_CALIBRATION,
    K_CONFIDENCE,
    K_DATA,
    K_EYE_CORNERS,
    K_FRAME_NUMBER,
    K_GAZE_CALIBRATED,
    K_GAZE_RAW,
    K_HIGH_RES_TIMESTAMP,
    K_IRIS_X,
    K_LEFT_X,
    K_RIGHT_X,
    K_SAMPLING_RATE,
    K_SESSION_ID,
    K_TIMESTAMP,
    CalibrationTransform,
    GazeSample,
)

logger = logging.getLogger(__name__)

STATUS_RECORDING = "recording"
STATUS_PAUSED = "paused"
STATUS_COMPLETED = "completed"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionMetadata:
    session_id: str
    start_timestamp: int
    created_at: str
    calibration_used: Optional[CalibrationTransform] = None
    status: str = STATUS_RECORDING
    end_timestamp: Optional[int] = None
    total_frames: int = 0

    @property
    def duration(self) -> Optional[int]:
        if self.end_timestamp is None:
            return None
        return self.end_timestamp - self.start_timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            K_SESSION_ID: self.session_id,
            "start_timestamp": self.start_timestamp,
            "end_timestamp": self.end_timestamp,
            "duration": self.duration,
            "total_frames": self.total_frames,
            "calibration_used": None if self.calibration_used is None else self.calibration_used.to_dict(),
            "status": self.status,
            "created_at": self.created_at,
        }


@dataclass
class SessionRecorder:
    """Collects per-frame gaze data points for one recording session.

    The transform snapshot is taken at start() so every point in a session
    is calibrated the same way. Archival/upload is someone else's job.
    """

    clock: Callable[[], int] = _epoch_ms
    metadata: Optional[SessionMetadata] = None
    data: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_recording(self) -> bool:
        return self.metadata is not None and self.metadata.status == STATUS_RECORDING

    def start(self, transform: Optional[CalibrationTransform] = None) -> str:
        if self.metadata is not None and self.metadata.status != STATUS_COMPLETED:
            raise RuntimeError("Session already in progress")

        self.metadata = SessionMetadata(
            session_id=str(uuid.uuid4()),
            start_timestamp=self.clock(),
            created_at=_utc_now_iso(),
            calibration_used=transform,
        )
        self.data = []
        logger.info(
            "Session started: %s (calibrated=%s)",
            self.metadata.session_id, transform is not None,
        )
        return self.metadata.session_id

    def pause(self) -> None:
        if not self.is_recording:
            raise RuntimeError("No active session to pause")
        self.metadata.status = STATUS_PAUSED
        logger.info("Session paused: %s", self.metadata.session_id)

    def resume(self) -> None:
        if self.metadata is None or self.metadata.status != STATUS_PAUSED:
            raise RuntimeError("No paused session to resume")
        self.metadata.status = STATUS_RECORDING
        logger.info("Session resumed: %s", self.metadata.session_id)

    def stop(self) -> SessionMetadata:
        if self.metadata is None or self.metadata.status == STATUS_COMPLETED:
            raise RuntimeError("No active session to stop")
        self.metadata.end_timestamp = self.clock()
        self.metadata.total_frames = len(self.data)
        self.metadata.status = STATUS_COMPLETED
        logger.info(
            "Session stopped: %s (%d frames, %d ms)",
            self.metadata.session_id, self.metadata.total_frames, self.metadata.duration,
        )
        return self.metadata

    def add_sample(self, sample: GazeSample) -> bool:
        """Record one frame; frames without a face and paused/stopped sessions are skipped."""
        if not self.is_recording or not sample.has_face:
            return False

        transform = self.metadata.calibration_used
        calibrated = None if transform is None else apply_calibration(sample.normalized_x, transform)

        self.data.append({
            K_SESSION_ID: self.metadata.session_id,
            K_TIMESTAMP: sample.timestamp,
            K_HIGH_RES_TIMESTAMP: sample.high_res_timestamp,
            K_GAZE_RAW: sample.normalized_x,
            K_GAZE_CALIBRATED: calibrated,
            K_IRIS_X: sample.raw_iris_x,
            K_EYE_CORNERS: {K_LEFT_X: sample.left_corner_x, K_RIGHT_X: sample.right_corner_x},
            K_CONFIDENCE: sample.confidence,
            K_FRAME_NUMBER: len(self.data) + 1,
        })
        self.metadata.total_frames = len(self.data)
        return True

    def sampling_rate(self) -> float:
        if self.metadata is None or not self.data:
            return 0.0
        end = self.metadata.end_timestamp if self.metadata.end_timestamp is not None else self.clock()
        seconds = (end - self.metadata.start_timestamp) / 1000.0
        if seconds <= 0:
            return 0.0
        return round(len(self.data) / seconds, 1)

    def export_payload(self) -> Dict[str, Any]:
        """Archive-ready view: inverse calibration targets, rate, and (timestamp, x) pairs."""
        if self.metadata is None:
            raise RuntimeError("No session recorded")
        return {
            K_SESSION_ID: self.metadata.session_id,
            K_CALIBRATION: inverse_targets(self.metadata.calibration_used),
            K_SAMPLING_RATE: self.sampling_rate(),
            K_DATA: [
                {
                    K_TIMESTAMP: p[K_TIMESTAMP],
                    "x": p[K_GAZE_CALIBRATED] if p[K_GAZE_CALIBRATED] is not None else p[K_GAZE_RAW],
                }
                for p in self.data
            ],
        }

    def summary(self) -> Dict[str, Any]:
        if self.metadata is None:
            raise RuntimeError("No session recorded")
        return {
            K_SESSION_ID: self.metadata.session_id,
            "created_at": self.metadata.created_at,
            "duration": self.metadata.duration or 0,
            "total_frames": self.metadata.total_frames,
            "status": self.metadata.status,
            "calibration_used": self.metadata.calibration_used is not None,
        }
