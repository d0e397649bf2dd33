from __future__ import annotations

from .base import EstimatorSpec, FaceModel, IrisLocalizer
from .darkest_pixel import DarkestPixelLocalizer
from .registry import (
    available_face_models,
    available_localizers,
    face_model_spec,
    get_face_model,
    get_iris_localizer,
    localizer_spec,
)

__all__ = [
    "EstimatorSpec",
    "FaceModel",
    "IrisLocalizer",
    "DarkestPixelLocalizer",
    "available_face_models",
    "available_localizers",
    "face_model_spec",
    "get_face_model",
    "get_iris_localizer",
    "localizer_spec",
]
