from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..core.config import IrisConfig
from ..core.schema import EyeRegion, clamp, clip_window_to_image
from .base import IrisLocalizer

logger = logging.getLogger(__name__)


@dataclass
class DarkestPixelLocalizer(IrisLocalizer):
    """Heuristic iris finder: darkest weighted pixel on a few scan lines.

    Notes:
      - Window is a square of side 2 * search_radius around the eye center,
        clipped to the frame; an empty window returns the center unchanged.
      - Scan lines are evenly spaced inside the window; ties go to the first
        scan line, then the leftmost pixel.
      - The result is clamped to +/- max_shift * search_radius around the
        center so a stray dark pixel (lash, shadow) cannot jump far.
      - A uniform window, saturated white included, still yields its leftmost
        pixel on the first scan line (then clamped), i.e. center - max_shift *
        search_radius. A search that starts from 255 and needs a strictly
        darker pixel would keep the center on pure white instead.
    """

    scan_lines: int = 3
    weights: Tuple[float, float, float] = (0.3, 0.3, 0.4)
    max_shift: float = 0.5

    def estimate_iris_x(self, frame_rgb: np.ndarray, region: EyeRegion) -> float:
        if not isinstance(frame_rgb, np.ndarray) or frame_rgb.ndim != 3 or frame_rgb.shape[2] < 3:
            raise ValueError("frame_rgb must be an HxWx3 ndarray (RGB)")

        H, W = frame_rgb.shape[:2]
        cx = float(region.center_x)
        x1, y1, x2, y2 = clip_window_to_image(cx, region.center_y, region.search_radius, (W, H))
        if x2 <= x1 or y2 <= y1:
            logger.debug("Eye window empty at (%.1f, %.1f); using center", cx, region.center_y)
            return cx

        spacing = max(1, (y2 - y1) // (self.scan_lines + 1))
        rows = [y1 + spacing * (i + 1) for i in range(self.scan_lines)]
        rows = [y for y in rows if y < y2]
        if not rows:
            return cx

        strip = frame_rgb[rows, x1:x2, :3].astype(np.float32)
        wr, wg, wb = self.weights
        intensity = strip[..., 0] * wr + strip[..., 1] * wg + strip[..., 2] * wb

        # row-major argmin == first scan line, then leftmost
        flat = int(np.argmin(intensity))
        darkest_x = float(x1 + flat % intensity.shape[1])

        limit = self.max_shift * float(region.search_radius)
        smoothed = cx + clamp(darkest_x - cx, -limit, limit)
        logger.debug(
            "iris center=%.1f darkest=%.1f smoothed=%.1f value=%.1f",
            cx, darkest_x, smoothed, float(intensity.flat[flat]),
        )
        return smoothed


def build_darkest_pixel_localizer(
    *,
    config: Optional[IrisConfig] = None,
    **overrides,
) -> DarkestPixelLocalizer:
    """Factory used by the registry."""
    cfg = config or IrisConfig()
    params = {
        "scan_lines": cfg.scan_lines,
        "weights": tuple(cfg.weights),
        "max_shift": cfg.max_shift,
    }
    params.update(overrides)
    return DarkestPixelLocalizer(**params)
