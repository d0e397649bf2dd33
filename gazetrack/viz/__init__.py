from __future__ import annotations

from .draw import draw_gaze_bar, draw_tracking

__all__ = ["draw_tracking", "draw_gaze_bar"]
