from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from ..estimators import available_face_models, available_localizers
from ..core.pipeline import track_gaze_video


def _build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gazetrack",
        description=(
            "Horizontal gaze tracking (gazetrack): estimate a normalized left/right "
            "gaze value per video frame from a face detector and eye heuristics.\n\n"
            "Notes:\n"
            "- --calibrate treats the leading frames as a left/center/right sweep.\n"
            "- Nothing is written unless you enable --json/--save-video or pass --calibration.\n"
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Required inputs
    p.add_argument("--video", required=False, type=Path, help="Path to the input video.")

    # Discovery
    p.add_argument("--list-models", action="store_true", help="List available face model backends and exit.")
    p.add_argument("--list-localizers", action="store_true", help="List available iris localizers and exit.")

    # Backend config
    p.add_argument("--model", default="blazeface", help="Face model backend name.")
    p.add_argument("--weights", type=Path, default=None, help="Path to TorchScript face model weights.")
    p.add_argument(
        "--device",
        default="auto",
        help="Compute device: auto|cpu|mps|cuda|cuda:0|0|1...",
    )
    p.add_argument("--config", type=Path, default=None, help="JSON file overriding tracker tunables.")
    p.add_argument("--localizer", default=None, help="Iris localizer name (overrides --config).")

    # Calibration
    p.add_argument(
        "--calibration",
        type=Path,
        default=None,
        help="Calibration file: loaded if present; written after a successful --calibrate.",
    )
    p.add_argument(
        "--calibrate",
        action="store_true",
        help="Run a calibration over the first frames (look left, center, right in turn).",
    )

    # Artifacts (opt-in)
    p.add_argument("--json", dest="save_json_flag", action="store_true", help="Write session JSON to <run>/gaze.json.")
    p.add_argument(
        "--save-video",
        nargs="?",
        const="annotated.mp4",
        default=None,
        help="Save annotated video under <run>/ (optionally pass a filename).",
    )
    p.add_argument("--out-dir", type=Path, default=Path("out"), help="Output root used only when saving artifacts.")
    p.add_argument(
        "--run-name",
        type=str,
        default=None,
        help="Optional run folder name under --out-dir. If omitted, outputs go directly under --out-dir.",
    )
    p.add_argument("--fourcc", type=str, default="mp4v", help="FourCC codec for saved video.")
    p.add_argument("--display", action="store_true", help="Show live annotated preview (ESC to stop).")
    p.add_argument("--max-frames", type=int, default=None, help="Stop after this many frames.")

    # UX
    p.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bar.")
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )

    return p


def main(argv: Optional[List[str]] = None) -> None:
    p = _build_argparser()
    args = p.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.list_models:
        for name in available_face_models():
            print(name)
        return

    if args.list_localizers:
        for name in available_localizers():
            print(name)
        return

    # Validate required args for a real run
    if args.video is None:
        p.error("--video is required unless using --list-models/--list-localizers")

    if args.weights is None:
        p.error("--weights is required for running gaze tracking")

    res = track_gaze_video(
        video=args.video,
        weights=args.weights,
        model=args.model,
        device=args.device,
        config=args.config,
        localizer=args.localizer,
        calibration=args.calibration,
        calibrate=args.calibrate,
        save_json_flag=args.save_json_flag,
        save_video=args.save_video,
        out_dir=args.out_dir,
        run_name=args.run_name,
        fourcc=args.fourcc,
        display=args.display,
        no_progress=args.no_progress,
        max_frames=args.max_frames,
    )

    print(json.dumps(res.stats, indent=2))


if __name__ == "__main__":
    main()
