"""
Planar perspective correction.

Maps the four observed corners of a rectangular object onto an axis-aligned
rectangle of its real-world size, so distances measured in the corrected
plane are metric.
"""

import numpy as np
from itertools import combinations
from typing import Tuple

from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from ..data_models import PerspectiveCorrection, Vector2D
from ..exceptions import DegenerateTransform
from ..linear_algebra import invert3x3
from .homography import homography_dlt

logger = get_logger(__name__)


def rectangle_corners(width: float, height: float) -> np.ndarray:
    """Corners (0,0), (w,0), (w,h), (0,h) in that order."""
    return np.array([
        [0.0, 0.0],
        [width, 0.0],
        [width, height],
        [0.0, height]
    ])


def _has_collinear_triple(corners: np.ndarray, relative_tolerance: float = 1e-9) -> bool:
    extent = max(float(np.ptp(corners, axis=0).max()), 1e-12)
    for i, j, k in combinations(range(len(corners)), 3):
        ab = corners[j] - corners[i]
        ac = corners[k] - corners[i]
        if abs(ab[0] * ac[1] - ab[1] * ac[0]) < relative_tolerance * extent ** 2:
            return True
    return False


def correct_perspective(image_points, real_world_dims: Tuple[float, float]) -> PerspectiveCorrection:
    """
    Build the forward and inverse mapping between image and object plane.

    Args:
        image_points: Four observed corners ordered top-left, top-right,
            bottom-right, bottom-left
        real_world_dims: (width, height) of the rectangle in world units

    Returns:
        PerspectiveCorrection: transform_matrix maps image -> rectangle and
            inverse_matrix maps rectangle -> image

    Raises:
        ValueError: If not exactly four points or non-positive dimensions
        DegenerateTransform: If three corners are collinear
        SingularMatrix: If the homography cannot be inverted
    """
    corners = PointProcessor.as_point_array(image_points, 2, "image_points")
    if len(corners) != 4:
        raise ValueError(f"Perspective correction needs exactly 4 corner points, got {len(corners)}")

    width, height = real_world_dims
    if width <= 0 or height <= 0:
        raise ValueError(f"Rectangle dimensions must be positive, got {width}x{height}")

    if _has_collinear_triple(corners):
        raise DegenerateTransform("Three of the four corners are collinear")

    target = rectangle_corners(width, height)
    H = homography_dlt(corners, target)
    H_inv = invert3x3(H)
    H_inv = H_inv / H_inv[2, 2]

    logger.debug(f"Perspective correction to {width}x{height} rectangle, det(H)={np.linalg.det(H):.3e}")

    return PerspectiveCorrection(
        original_points=[Vector2D.from_array(p) for p in corners],
        corrected_points=[Vector2D.from_array(p) for p in target],
        transform_matrix=H,
        inverse_matrix=H_inv
    )
