from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

from .io import load_json


@dataclass(frozen=True)
class DetectorConfig:
    """Face-model tensor layout and acceptance policy.

    score_threshold is a low default; treat it as tunable per model.
    """

    input_size: int = 128
    num_detections: int = 896
    num_coords: int = 16
    score_threshold: float = 0.01

    def __post_init__(self) -> None:
        if self.input_size <= 0:
            raise ValueError("input_size must be positive")
        if self.num_detections <= 0:
            raise ValueError("num_detections must be positive")
        if self.num_coords < 4:
            raise ValueError("num_coords must be >= 4 (cx, cy, w, h)")
        if not 0.0 <= self.score_threshold < 1.0:
            raise ValueError("score_threshold must be in [0, 1)")


@dataclass(frozen=True)
class EyeGeometry:
    """Fixed fractions of the face box locating each eye."""

    eye_y: float = 0.35
    left_eye_x: float = 0.30
    right_eye_x: float = 0.70
    corner_offset: float = 0.08
    search_radius: float = 0.15


@dataclass(frozen=True)
class IrisConfig:
    scan_lines: int = 3
    # r, g, b; blue weighted up (sclera reads blue/white, iris reads dark)
    weights: Tuple[float, float, float] = (0.3, 0.3, 0.4)
    max_shift: float = 0.5  # fraction of search radius

    def __post_init__(self) -> None:
        if self.scan_lines < 1:
            raise ValueError("scan_lines must be >= 1")
        if len(self.weights) != 3:
            raise ValueError("weights must be (r, g, b)")
        if self.max_shift < 0:
            raise ValueError("max_shift must be >= 0")


@dataclass(frozen=True)
class CalibrationConfig:
    samples_per_position: int = 15
    min_samples: int = 5
    min_confidence: float = 0.3
    denominator_epsilon: float = 1e-10

    def __post_init__(self) -> None:
        if self.min_samples < 1:
            raise ValueError("min_samples must be >= 1")
        if self.samples_per_position < self.min_samples:
            raise ValueError("samples_per_position must be >= min_samples")


@dataclass(frozen=True)
class TrackerConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    eyes: EyeGeometry = field(default_factory=EyeGeometry)
    iris: IrisConfig = field(default_factory=IrisConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    span_epsilon: float = 1e-3
    iris_localizer: str = "darkest_pixel"
    # 0 => drop frames while one is in flight; 1..2 => keep latest N
    queue_depth: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.queue_depth <= 2:
            raise ValueError("queue_depth must be 0, 1 or 2")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TrackerConfig":
        """Build a config from nested dicts; unknown keys are rejected."""
        sections = {
            "detector": DetectorConfig,
            "eyes": EyeGeometry,
            "iris": IrisConfig,
            "calibration": CalibrationConfig,
        }
        top_level = {f.name for f in fields(cls)} - set(sections)

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in sections:
                if not isinstance(value, Mapping):
                    raise ValueError(f"config section {key!r} must be a mapping")
                kwargs[key] = _build_section(sections[key], value)
            elif key in top_level:
                kwargs[key] = value
            else:
                raise ValueError(f"Unknown config key {key!r}")
        return cls(**kwargs)

    def with_overrides(self, **kwargs: Any) -> "TrackerConfig":
        return replace(self, **kwargs)


def _build_section(kind: type, values: Mapping[str, Any]) -> Any:
    allowed = {f.name for f in fields(kind)}
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Unknown keys for {kind.__name__}: {sorted(unknown)}")
    cleaned = dict(values)
    if "weights" in cleaned:
        cleaned["weights"] = tuple(float(w) for w in cleaned["weights"])
    return kind(**cleaned)


def load_config(path: str | Path) -> TrackerConfig:
    return TrackerConfig.from_mapping(load_json(path))
