from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict


@dataclass
class TrackResult:
    """Result returned by an offline tracking run.

    - payload: session export plus run metadata (always in-memory)
    - paths: populated only when saving is enabled
    - stats: small counters / run info
    """

    payload: Dict[str, Any]
    paths: Dict[str, Path] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)
