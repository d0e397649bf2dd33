from __future__ import annotations

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..core.schema import EyeRegion, GazeSample

# BGR
FACE_COLOR = (80, 200, 80)
EYE_COLOR = (200, 160, 40)
IRIS_COLOR = (40, 40, 230)
RAW_COLOR = (180, 180, 180)
CALIBRATED_COLOR = (40, 220, 255)

# -------------------------
# Tiny draw utils
# -------------------------


def _legible_text_color(bg_bgr: Tuple[int, int, int]) -> Tuple[int, int, int]:
    b, g, r = bg_bgr
    y = 0.2126 * r + 0.7152 * g + 0.0722 * b
    return (0, 0, 0) if y > 160 else (255, 255, 255)


def _clamp_point(x: int, y: int, w: int, h: int) -> Tuple[int, int]:
    return max(0, min(w - 1, x)), max(0, min(h - 1, y))


def _font_scale(img: np.ndarray) -> float:
    return max(0.4, min(1.6, img.shape[0] / 1080.0))


# -------------------------
# Primitive drawing
# -------------------------

def draw_bbox(img: np.ndarray, box: Sequence[float], color: Tuple[int, int, int], thickness: int = 2) -> None:
    x1, y1, x2, y2 = [int(round(float(v))) for v in box[:4]]
    h, w = img.shape[:2]
    x1, y1 = _clamp_point(x1, y1, w, h)
    x2, y2 = _clamp_point(x2, y2, w, h)
    cv2.rectangle(img, (x1, y1), (x2, y2), color, thickness, cv2.LINE_AA)


def draw_label_block(
    img: np.ndarray,
    x1: int,
    y1: int,
    text: str,
    color: Tuple[int, int, int],
    *,
    font_scale: float | None = None,
) -> None:
    ts = font_scale if font_scale is not None else _font_scale(img)
    tf = max(1, int(round(ts * 2)))
    (tw, th), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, ts, tf)
    th = th + 4

    y_top = y1 - th
    if y_top < 0:
        y_top = y1
        cv2.rectangle(img, (x1, y_top), (x1 + tw + 6, y_top + th), color, -1)
        cv2.putText(img, text, (x1 + 3, y_top + th - 4), cv2.FONT_HERSHEY_SIMPLEX, ts, _legible_text_color(color), tf, cv2.LINE_AA)
    else:
        cv2.rectangle(img, (x1, y_top), (x1 + tw + 6, y1), color, -1)
        cv2.putText(img, text, (x1 + 3, y1 - 4), cv2.FONT_HERSHEY_SIMPLEX, ts, _legible_text_color(color), tf, cv2.LINE_AA)


def draw_eye_region(img: np.ndarray, region: EyeRegion, iris_x: float, color: Tuple[int, int, int] = EYE_COLOR) -> None:
    r = float(region.search_radius)
    draw_bbox(img, (region.center_x - r, region.center_y - r, region.center_x + r, region.center_y + r), color, thickness=1)

    cy = int(round(region.center_y))
    tick = max(3, int(round(r * 0.3)))
    for cx in (region.inner_corner_x, region.outer_corner_x):
        x = int(round(cx))
        cv2.line(img, (x, cy - tick), (x, cy + tick), color, 1, cv2.LINE_AA)

    ix = int(round(iris_x))
    cv2.circle(img, (ix, cy), max(2, int(round(r * 0.25))), (0, 0, 0), 2, cv2.LINE_AA)
    cv2.circle(img, (ix, cy), max(2, int(round(r * 0.25))), IRIS_COLOR, 1, cv2.LINE_AA)


def draw_gaze_bar(
    img: np.ndarray,
    raw: float,
    calibrated: Optional[float] = None,
    *,
    margin: int = 20,
    height: int = 14,
) -> None:
    """Horizontal [-1, 1] track along the bottom edge with raw/calibrated markers."""
    h, w = img.shape[:2]
    x1, x2 = margin, max(margin + 1, w - margin)
    y2 = h - margin
    y1 = y2 - height
    cv2.rectangle(img, (x1, y1), (x2, y2), (40, 40, 40), -1)
    mid = (x1 + x2) // 2
    cv2.line(img, (mid, y1), (mid, y2), (120, 120, 120), 1)

    def to_px(v: float) -> int:
        v = max(-1.0, min(1.0, float(v)))
        return int(round(x1 + (v + 1.0) / 2.0 * (x2 - x1)))

    cv2.line(img, (to_px(raw), y1 - 4), (to_px(raw), y2 + 4), RAW_COLOR, 2, cv2.LINE_AA)
    if calibrated is not None:
        cv2.line(img, (to_px(calibrated), y1 - 6), (to_px(calibrated), y2 + 6), CALIBRATED_COLOR, 3, cv2.LINE_AA)


# -------------------------
# Public frame composer
# -------------------------

def draw_tracking(
    img: np.ndarray,
    sample: GazeSample,
    *,
    show_eyes: bool = True,
    show_bar: bool = True,
    label: Optional[str] = None,
) -> np.ndarray:
    """Draw one GazeSample onto a BGR frame in place and return it."""
    if img is None:
        return img

    if not sample.has_face:
        draw_label_block(img, 10, 10, label or "no face", (60, 60, 200))
        return img

    face = sample.face
    draw_bbox(img, face.xyxy(), FACE_COLOR, thickness=2)
    x1 = max(0, int(round(face.left)))
    y1 = max(0, int(round(face.top)))
    text = f"face {face.confidence:.2f}  gaze {sample.normalized_x:+.2f}"
    if sample.calibrated_x is not None:
        text += f" -> {sample.calibrated_x:+.2f}"
    draw_label_block(img, x1, y1, text, FACE_COLOR)

    if show_eyes and sample.regions is not None:
        left, right = sample.regions
        draw_eye_region(img, left, sample.left_iris_x)
        draw_eye_region(img, right, sample.right_iris_x)

    if show_bar:
        draw_gaze_bar(img, sample.normalized_x, sample.calibrated_x)

    if label:
        draw_label_block(img, 10, 10, label, (90, 90, 90))
    return img
