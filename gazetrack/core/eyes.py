from __future__ import annotations

from typing import Optional, Tuple

from .config import EyeGeometry
from .schema import EyeRegion, FaceDetection


class EyeRegionEstimator:
    """Place both eyes at fixed fractions of the face box (not of the image)."""

    def __init__(self, geometry: Optional[EyeGeometry] = None):
        self.geometry = geometry or EyeGeometry()

    def estimate(self, face: FaceDetection) -> Tuple[EyeRegion, EyeRegion]:
        g = self.geometry
        eye_y = face.top + face.height * g.eye_y
        left_x = face.left + face.width * g.left_eye_x
        right_x = face.left + face.width * g.right_eye_x
        offset = face.width * g.corner_offset
        radius = face.width * g.search_radius

        left = EyeRegion(
            center_x=left_x,
            center_y=eye_y,
            search_radius=radius,
            inner_corner_x=left_x + offset,
            outer_corner_x=left_x - offset,
        )
        right = EyeRegion(
            center_x=right_x,
            center_y=eye_y,
            search_radius=radius,
            inner_corner_x=right_x - offset,
            outer_corner_x=right_x + offset,
        )
        return left, right
