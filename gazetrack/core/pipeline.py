from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2

from ..estimators import FaceModel, get_face_model
from ..viz import draw_tracking
from .calibration import CalibrationEngine, Complete, Failed, calibration_info
from .config import TrackerConfig, load_config
from .io import CalibrationStore, VideoReader, VideoWriter, save_json
from .result import TrackResult
from .schema import K_SCHEMA_VERSION, GazeSample
from .session import SessionRecorder
from .tracker import GazePipeline, GazeTracker

logger = logging.getLogger(__name__)

SESSION_SCHEMA = "gazetrack-session-v1"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def _resolve_out_path(run_dir: Path, maybe_name: Optional[str], default_name: str) -> Path:
    if not maybe_name:
        return run_dir / default_name
    p = Path(maybe_name)
    if p.is_absolute():
        return p
    return run_dir / p


class _VideoClock:
    """Timestamps derived from the frame index so offline runs are reproducible."""

    def __init__(self, fps: float):
        self.fps = fps if fps and fps > 0 else 30.0
        self.frame_index = 0

    def ms(self) -> int:
        return int(round(self.frame_index * 1000.0 / self.fps))

    def now(self) -> Tuple[int, int]:
        ms = self.ms()
        return ms, ms * 1_000_000


def _calibration_label(engine: CalibrationEngine) -> Optional[str]:
    progress = engine.progress()
    if progress is None:
        return None
    position, have, need = progress
    return f"calibrate: look {position.name.lower()} {have}/{need}"


@dataclass
class RunConfig:
    # Inputs
    video: Path
    weights: Path | None = None

    # Backend
    model: str = "blazeface"
    device: str = "auto"
    config: Path | None = None
    localizer: Optional[str] = None
    face_model: Optional[FaceModel] = None  # prebuilt backend; skips weights

    # Calibration
    calibration: Path | None = None  # persisted transform (loaded, and saved after --calibrate)
    calibrate: bool = False  # the leading frames are a left/center/right calibration sweep

    # Output (opt-in)
    save_json_flag: bool = False
    save_video: Optional[str] = None
    out_dir: Path = Path("out")
    run_name: Optional[str] = None
    fourcc: str = "mp4v"
    display: bool = False
    no_progress: bool = False
    max_frames: Optional[int] = None


def track_gaze_video(**kwargs: Any) -> TrackResult:
    """Main library API: estimate horizontal gaze on every frame of a video.

    Returns a TrackResult(payload, paths, stats). The payload carries the
    recorded session, its export view and the calibration in effect.
    """
    cfg = RunConfig(**kwargs)  # type: ignore[arg-type]
    if cfg.face_model is None and cfg.weights is None:
        raise ValueError("weights is required unless a face_model is passed in.")

    tracker_cfg = load_config(cfg.config) if cfg.config is not None else TrackerConfig()
    if cfg.localizer:
        tracker_cfg = tracker_cfg.with_overrides(iris_localizer=cfg.localizer)

    # Calibration store / engine
    store = CalibrationStore(cfg.calibration) if cfg.calibration is not None else None
    stored = store.load() if store is not None else None
    if cfg.calibrate and store is None:
        warnings.warn(
            "calibrate was requested without a calibration path; "
            "the new transform is kept in the result payload only.",
            RuntimeWarning,
        )
    engine = CalibrationEngine(
        tracker_cfg.calibration,
        transform=stored,
        on_complete=store.save if store is not None else None,
    )

    face_model = cfg.face_model
    if face_model is None:
        face_model = get_face_model(model=cfg.model, weights=cfg.weights, device=cfg.device)

    # Video IO
    reader = VideoReader(cfg.video)
    clock = _VideoClock(reader.fps)
    tracker = GazeTracker(GazePipeline(face_model, tracker_cfg, clock=clock.now), engine)
    recorder = SessionRecorder(clock=clock.ms)

    saving_enabled = bool(cfg.save_json_flag or cfg.save_video)
    paths: Dict[str, Path] = {}
    writer: Optional[VideoWriter] = None
    out_json_path: Optional[Path] = None
    out_video_path: Optional[Path] = None

    if saving_enabled:
        out_dir = Path(cfg.out_dir)
        run_dir = out_dir / str(cfg.run_name) if cfg.run_name and str(cfg.run_name).strip() else out_dir
        run_dir.mkdir(parents=True, exist_ok=True)

        if cfg.save_json_flag:
            out_json_path = _resolve_out_path(run_dir, "gaze.json", "gaze.json")
            paths["json"] = out_json_path
        if cfg.save_video:
            out_video_path = _resolve_out_path(run_dir, cfg.save_video, "annotated.mp4")
            paths["video"] = out_video_path
            writer = VideoWriter(
                str(out_video_path),
                fps=reader.fps,
                size=(reader.width, reader.height),
                fourcc=cfg.fourcc,
            )

    calibrating = bool(cfg.calibrate)
    if calibrating:
        tracker.begin_calibration()
    else:
        recorder.start(engine.active_transform)

    total_frames = 0
    faces_found = 0
    calibration_frames = 0
    window_opened = False

    # Optional progress
    pbar = None
    if not cfg.no_progress:
        try:
            from tqdm import tqdm  # type: ignore
            pbar = tqdm(total=reader.frame_count or None, desc="gazetrack")
        except Exception:
            pbar = None

    try:
        while cfg.max_frames is None or total_frames < cfg.max_frames:
            ok, frame = reader.read()
            if not ok:
                break
            clock.frame_index = total_frames
            total_frames += 1

            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            sample: GazeSample = tracker.process_frame(rgb)
            if sample.has_face:
                faces_found += 1

            label = None
            if calibrating:
                calibration_frames += 1
                tracker.record_calibration_sample(sample)
                label = _calibration_label(engine)
                state = tracker.current_calibration_state()
                if isinstance(state, (Complete, Failed)):
                    calibrating = False
                    if isinstance(state, Failed):
                        warnings.warn(
                            f"Calibration failed ({state.reason.value}): {state.detail}",
                            RuntimeWarning,
                        )
                    recorder.start(engine.active_transform)
            else:
                recorder.add_sample(sample)

            need_viz = bool(cfg.display or writer is not None)
            if need_viz:
                out_img = draw_tracking(frame.copy(), sample, label=label)
                if writer is not None:
                    writer.write(out_img)
                if cfg.display:
                    window_opened = True
                    cv2.imshow("gazetrack", out_img)
                    if cv2.waitKey(1) & 0xFF == 27:
                        cfg.display = False

            if pbar:
                pbar.update(1)

        clock.frame_index = total_frames

        if calibrating:
            # video ended mid-sweep: fit with whatever was collected
            outcome = tracker.finish_calibration()
            if not outcome.ok:
                warnings.warn(
                    f"Calibration did not complete ({outcome.reason.value}): {outcome.detail}",
                    RuntimeWarning,
                )
            recorder.start(engine.active_transform)

        metadata = recorder.stop()
        transform = engine.active_transform
        payload: Dict[str, Any] = {
            K_SCHEMA_VERSION: SESSION_SCHEMA,
            "track_run": {
                "model": cfg.model if cfg.face_model is None else type(cfg.face_model).__name__,
                "weights": None if cfg.weights is None else str(cfg.weights),
                "device": cfg.device,
                "iris_localizer": tracker_cfg.iris_localizer,
                "video": str(cfg.video),
                "fps": clock.fps,
                "created_utc": _utc_now_iso(),
                "tool": "gazetrack",
            },
            "calibration_info": calibration_info(transform),
            "session": metadata.to_dict(),
            "export": recorder.export_payload(),
            "data": list(recorder.data),
        }

        if out_json_path is not None:
            save_json(payload, out_json_path)

    finally:
        if writer is not None:
            writer.release()
        reader.release()
        if window_opened:
            try:
                cv2.destroyAllWindows()
            except Exception:
                pass
        if pbar is not None:
            try:
                pbar.close()
            except Exception:
                pass

    last = engine.last_outcome
    stats: Dict[str, Any] = {
        "frames_processed": total_frames,
        "faces_found": faces_found,
        "calibration_frames": calibration_frames,
        "samples_recorded": metadata.total_frames,
        "sampling_rate": recorder.sampling_rate(),
        "calibrated": transform is not None,
        "calibration_outcome": None if last is None else ("ok" if last.ok else last.reason.value),
        "saving_enabled": saving_enabled,
        "out_dir": str(cfg.out_dir),
        "run_name": cfg.run_name,
    }
    if out_json_path is not None:
        stats["out_json"] = str(out_json_path)
    if out_video_path is not None:
        stats["out_video"] = str(out_video_path)

    logger.info(
        "Tracked %d frames (%d with a face, %d recorded)",
        total_frames, faces_found, metadata.total_frames,
    )
    return TrackResult(payload=payload, paths=paths, stats=stats)
