"""
Three-target horizontal gaze calibration.

The engine walks LEFT -> CENTER -> RIGHT, accumulating raw gaze values from
confident frames into one CalibrationPoint per target, then fits
``target = slope * measured + intercept``. Every state is an immutable
snapshot (Idle | Collecting | Computing | Complete | Failed); transitions
happen under one lock so a frame at a boundary lands in exactly one state.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import CalibrationConfig
from .schema import (
    CalibrationPoint,
    CalibrationPosition,
    CalibrationTransform,
    GazeSample,
    clamp,
)

logger = logging.getLogger(__name__)

POSITION_ORDER: Tuple[CalibrationPosition, ...] = (
    CalibrationPosition.LEFT,
    CalibrationPosition.CENTER,
    CalibrationPosition.RIGHT,
)

# Raw-gaze targets reported when no usable transform exists.
DEFAULT_TARGETS: Dict[str, float] = {"left": -0.85, "center": 0.01, "right": 0.90}


# -------------------------
# Failures
# -------------------------

class CalibrationFailure(Enum):
    INCOMPLETE = "incomplete"
    INSUFFICIENT_DATA = "insufficient_data"
    PERSIST_FAILED = "persist_failed"


class CalibrationError(ValueError):
    def __init__(self, reason: CalibrationFailure, detail: str):
        super().__init__(f"{reason.value}: {detail}")
        self.reason = reason
        self.detail = detail


@dataclass(frozen=True)
class CalibrationOutcome:
    ok: bool
    transform: Optional[CalibrationTransform] = None
    reason: Optional[CalibrationFailure] = None
    detail: str = ""


# -------------------------
# States
# -------------------------

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Collecting:
    position: CalibrationPosition
    samples: Tuple[float, ...] = ()


@dataclass(frozen=True)
class Computing:
    pass


@dataclass(frozen=True)
class Complete:
    transform: CalibrationTransform


@dataclass(frozen=True)
class Failed:
    reason: CalibrationFailure
    detail: str = ""


CalibrationState = Union[Idle, Collecting, Computing, Complete, Failed]


# -------------------------
# Fit
# -------------------------

def fit_linear_transform(
    points: Sequence[CalibrationPoint],
    config: Optional[CalibrationConfig] = None,
) -> CalibrationTransform:
    """Least-squares fit of target value against mean measured raw gaze.

    Raises CalibrationError when a target is missing, under-sampled, or
    fewer than two targets have a finite mean. Degenerate fits never raise:
    a near-zero denominator falls back to a range mapping centred on zero,
    and a non-finite result falls back to identity.
    """
    cfg = config or CalibrationConfig()

    by_position = {p.position: p for p in points}
    missing = [pos.name.lower() for pos in POSITION_ORDER if pos not in by_position]
    if missing:
        raise CalibrationError(CalibrationFailure.INCOMPLETE, f"missing data for: {', '.join(missing)}")
    short = [
        pos.name.lower()
        for pos in POSITION_ORDER
        if len(by_position[pos].samples) < cfg.min_samples
    ]
    if short:
        raise CalibrationError(
            CalibrationFailure.INCOMPLETE,
            f"fewer than {cfg.min_samples} samples for: {', '.join(short)}",
        )

    pairs: List[Tuple[float, float]] = []
    for pos in POSITION_ORDER:
        m = by_position[pos].mean()
        if math.isfinite(m):
            pairs.append((m, pos.target_value))
    logger.info("Calibration means: %s", [(round(x, 4), y) for x, y in pairs])

    if len(pairs) < 2:
        raise CalibrationError(
            CalibrationFailure.INSUFFICIENT_DATA,
            f"only {len(pairs)} target(s) with a finite mean",
        )

    n = len(pairs)
    sum_x = sum(x for x, _ in pairs)
    sum_y = sum(y for _, y in pairs)
    sum_xy = sum(x * y for x, y in pairs)
    sum_x2 = sum(x * x for x, _ in pairs)
    denominator = n * sum_x2 - sum_x * sum_x

    if abs(denominator) < cfg.denominator_epsilon:
        measured = [x for x, _ in pairs]
        spread = max(measured) - min(measured)
        slope = 2.0 / spread if spread > 0 else 1.0
        intercept = -(sum_x / n) * slope
        logger.warning("Regression denominator %.3g too small; using range mapping", denominator)
    else:
        slope = (n * sum_xy - sum_x * sum_y) / denominator
        intercept = (sum_y - slope * sum_x) / n

    if not (math.isfinite(slope) and math.isfinite(intercept)):
        logger.warning("Non-finite transform (slope=%r, intercept=%r); using identity", slope, intercept)
        return CalibrationTransform.identity()

    return CalibrationTransform(slope=float(slope), intercept=float(intercept))


# -------------------------
# Apply
# -------------------------

def apply_calibration(raw: float, transform: Optional[CalibrationTransform] = None) -> float:
    """Identity without a transform; otherwise clamp(slope * raw + intercept) to [-1, 1]."""
    if transform is None:
        return raw
    return clamp(transform.slope * raw + transform.intercept, -1.0, 1.0)


class CalibrationApplier:
    """Binds one immutable transform snapshot (or None) to apply_calibration."""

    def __init__(self, transform: Optional[CalibrationTransform] = None):
        self.transform = transform

    def apply(self, raw: float) -> float:
        return apply_calibration(raw, self.transform)

    @property
    def is_calibrated(self) -> bool:
        return self.transform is not None


def inverse_targets(transform: Optional[CalibrationTransform]) -> Dict[str, float]:
    """Raw gaze values that the transform maps onto -1, 0 and 1."""
    if transform is None or transform.slope == 0:
        return dict(DEFAULT_TARGETS)
    s, b = transform.slope, transform.intercept
    return {
        "left": (-1.0 - b) / s,
        "center": (0.0 - b) / s,
        "right": (1.0 - b) / s,
    }


def calibration_info(transform: Optional[CalibrationTransform]) -> Dict[str, object]:
    return {
        "is_calibrated": transform is not None,
        "slope": None if transform is None else transform.slope,
        "intercept": None if transform is None else transform.intercept,
    }


# -------------------------
# Engine
# -------------------------

@dataclass
class _Run:
    points: Dict[CalibrationPosition, CalibrationPoint] = field(
        default_factory=lambda: {pos: CalibrationPoint(pos) for pos in POSITION_ORDER}
    )


class CalibrationEngine:
    """Operator-driven collection state machine producing a CalibrationTransform.

    Args:
      config: sample counts, confidence gate and regression epsilon.
      transform: transform already persisted (loaded on start), if any.
      on_complete: called with the new transform before it is published;
        typically CalibrationStore.save.
    """

    def __init__(
        self,
        config: Optional[CalibrationConfig] = None,
        *,
        transform: Optional[CalibrationTransform] = None,
        on_complete: Optional[Callable[[CalibrationTransform], None]] = None,
    ):
        self.config = config or CalibrationConfig()
        self.on_complete = on_complete
        self._lock = threading.Lock()
        self._state: CalibrationState = Idle()
        self._run: Optional[_Run] = None
        self._active: Optional[CalibrationTransform] = transform
        self.last_outcome: Optional[CalibrationOutcome] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def begin(self) -> CalibrationState:
        """Start a fresh run at LEFT, discarding any previous samples."""
        with self._lock:
            self._run = _Run()
            self._state = Collecting(POSITION_ORDER[0])
            self.last_outcome = None
            logger.info("Calibration started: collecting %s", POSITION_ORDER[0].name.lower())
            return self._snapshot()

    def cancel(self) -> CalibrationState:
        with self._lock:
            self._run = None
            self._state = Idle()
            logger.info("Calibration cancelled")
            return self._state

    def current_state(self) -> CalibrationState:
        with self._lock:
            return self._snapshot()

    def record_sample(self, sample: GazeSample) -> Optional[CalibrationOutcome]:
        """Feed one frame. Returns the outcome when this frame ended the run."""
        with self._lock:
            if not isinstance(self._state, Collecting) or self._run is None:
                return None
            if not sample.has_face or sample.confidence <= self.config.min_confidence:
                return None

            position = self._state.position
            point = self._run.points[position]
            point.samples.append(float(sample.normalized_x))
            if len(point.samples) < self.config.samples_per_position:
                return None

            logger.info("Calibration %s collected (%d samples)", position.name.lower(), len(point.samples))
            nxt = self._next_open_position(position)
            if nxt is not None:
                self._state = Collecting(nxt)
                return None
            return self._compute()

    def finish(self) -> CalibrationOutcome:
        """Fit now with whatever has been collected (e.g. operator timeout)."""
        with self._lock:
            if self._run is None or not isinstance(self._state, (Collecting, Failed)):
                outcome = CalibrationOutcome(
                    ok=False,
                    reason=CalibrationFailure.INCOMPLETE,
                    detail="no calibration run in progress",
                )
                self.last_outcome = outcome
                return outcome
            return self._compute()

    def progress(self) -> Optional[Tuple[CalibrationPosition, int, int]]:
        with self._lock:
            if not isinstance(self._state, Collecting) or self._run is None:
                return None
            pos = self._state.position
            return pos, len(self._run.points[pos].samples), self.config.samples_per_position

    @property
    def active_transform(self) -> Optional[CalibrationTransform]:
        return self._active

    @property
    def points(self) -> List[CalibrationPoint]:
        with self._lock:
            if self._run is None:
                return []
            return [
                CalibrationPoint(p.position, list(p.samples))
                for p in self._run.points.values()
            ]

    # ------------------------------------------------------------------
    # Private (caller holds the lock)
    # ------------------------------------------------------------------

    def _snapshot(self) -> CalibrationState:
        state = self._state
        if isinstance(state, Collecting) and self._run is not None:
            return Collecting(state.position, tuple(self._run.points[state.position].samples))
        return state

    def _next_open_position(self, position: CalibrationPosition) -> Optional[CalibrationPosition]:
        """Next target after `position` that still needs samples."""
        assert self._run is not None
        idx = POSITION_ORDER.index(position)
        for pos in POSITION_ORDER[idx + 1:]:
            if len(self._run.points[pos].samples) < self.config.samples_per_position:
                return pos
        return None

    def _first_short_position(self) -> CalibrationPosition:
        assert self._run is not None
        for pos in POSITION_ORDER:
            if len(self._run.points[pos].samples) < self.config.min_samples:
                return pos
        return POSITION_ORDER[0]

    def _compute(self) -> CalibrationOutcome:
        assert self._run is not None
        self._state = Computing()
        try:
            transform = fit_linear_transform(list(self._run.points.values()), self.config)
        except CalibrationError as e:
            if e.reason is CalibrationFailure.INCOMPLETE:
                # keep what we have and resume at the first short target
                self._state = Collecting(self._first_short_position())
            else:
                self._state = Failed(e.reason, e.detail)
            logger.warning("Calibration failed (%s): %s", e.reason.value, e.detail)
            outcome = CalibrationOutcome(ok=False, reason=e.reason, detail=e.detail)
            self.last_outcome = outcome
            return outcome

        if self.on_complete is not None:
            try:
                self.on_complete(transform)
            except Exception as e:
                self._state = Failed(CalibrationFailure.PERSIST_FAILED, str(e))
                self.last_outcome = CalibrationOutcome(
                    ok=False, reason=CalibrationFailure.PERSIST_FAILED, detail=str(e)
                )
                raise

        self._active = transform
        self._state = Complete(transform)
        self._run = None
        logger.info("Calibration complete: slope=%.4f intercept=%.4f", transform.slope, transform.intercept)
        outcome = CalibrationOutcome(ok=True, transform=transform)
        self.last_outcome = outcome
        return outcome
