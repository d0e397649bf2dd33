from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List

import torch

from .base import EstimatorSpec, FaceModel, IrisLocalizer
from .blazeface import build_blazeface_model
from .darkest_pixel import build_darkest_pixel_localizer


# -------------------------
# Registries (name -> spec + builder)
# -------------------------

@dataclass(frozen=True)
class _Entry:
    spec: EstimatorSpec
    builder: Callable[..., Any]


_FACE_MODELS: Dict[str, _Entry] = {
    "blazeface": _Entry(
        spec=EstimatorSpec(
            name="blazeface",
            variants=("front",),
            description="BlazeFace-style TorchScript detector (128x128 input, 896 anchors).",
        ),
        builder=build_blazeface_model,
    )
}

_IRIS_LOCALIZERS: Dict[str, _Entry] = {
    "darkest_pixel": _Entry(
        spec=EstimatorSpec(
            name="darkest_pixel",
            description="Darkest weighted pixel over a few scan lines, clamped around the eye center.",
        ),
        builder=build_darkest_pixel_localizer,
    )
}


def available_face_models() -> List[str]:
    return sorted(_FACE_MODELS.keys())


def available_localizers() -> List[str]:
    return sorted(_IRIS_LOCALIZERS.keys())


def _lookup(table: Dict[str, _Entry], name: str, kind: str, available: List[str]) -> _Entry:
    key = (name or "").strip().lower()
    if key not in table:
        raise ValueError(f"Unknown {kind} '{name}'. Available: {available}")
    return table[key]


def face_model_spec(name: str) -> EstimatorSpec:
    return _lookup(_FACE_MODELS, name, "face model", available_face_models()).spec


def localizer_spec(name: str) -> EstimatorSpec:
    return _lookup(_IRIS_LOCALIZERS, name, "iris localizer", available_localizers()).spec


def _normalize_device(device: str) -> str:
    """Resolve device strings.

    Supports:
      - 'auto' -> cuda:0 if available, else mps, else cpu
      - numeric strings like '0', '1' -> cuda:0, cuda:1 (if CUDA available)
      - passthrough values like 'cpu', 'mps', 'cuda', 'cuda:0'

    If a numeric device is provided but CUDA is unavailable, falls back to cpu.
    """
    raw = (device or "auto").strip()
    d = raw.lower()

    if d.isdigit():
        return f"cuda:{int(d)}" if torch.cuda.is_available() else "cpu"

    if d == "cuda":
        return "cuda:0" if torch.cuda.is_available() else "cpu"

    if d != "auto":
        return raw

    if torch.cuda.is_available():
        return "cuda:0"
    mps = getattr(torch.backends, "mps", None)
    if mps is not None and mps.is_available():
        return "mps"
    return "cpu"


def get_face_model(
    *,
    model: str = "blazeface",
    weights: Path | str,
    device: str = "auto",
    **kwargs: Any,
) -> FaceModel:
    """Factory: construct a face-localization backend.

    Args:
      model: backend name (default: blazeface)
      weights: path to TorchScript weights
      device: 'auto' | 'cpu' | 'mps' | 'cuda' | 'cuda:0' | etc
    """
    entry = _lookup(_FACE_MODELS, model, "face model", available_face_models())
    return entry.builder(weights=Path(weights), device=_normalize_device(device), **kwargs)


def get_iris_localizer(name: str = "darkest_pixel", **kwargs: Any) -> IrisLocalizer:
    """Factory: construct an iris localization strategy (kwargs go to its builder)."""
    entry = _lookup(_IRIS_LOCALIZERS, name, "iris localizer", available_localizers())
    return entry.builder(**kwargs)
