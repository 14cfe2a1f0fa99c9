"""
Accuracy and extent analysis of measured point sets.
"""

import numpy as np
from typing import Dict, Sequence

from utils.logger_config import get_logger
from ..data_models import CameraIntrinsics, ObjectDimensions, Vector3D

logger = get_logger(__name__)


def compute_object_dimensions(points: np.ndarray) -> ObjectDimensions:
    """
    Axis-aligned extent of a point set.

    The volume is that of the ellipsoid inscribed in the bounding box,
    pi/6 * width * height * depth, which is closer to the volume of rounded
    objects than the box itself.

    Args:
        points: (N, 3) scaled world points, N >= 1
    """
    if len(points) == 0:
        raise ValueError("Cannot compute dimensions of an empty point set")

    extent = points.max(axis=0) - points.min(axis=0)
    width, height, depth = (float(v) for v in extent)
    return ObjectDimensions(
        width=width,
        height=height,
        depth=depth,
        volume=float(np.pi / 6.0 * width * height * depth),
        centroid=Vector3D.from_array(points.mean(axis=0))
    )


def stereo_uncertainty(
    depth: float,
    baseline: float,
    focal_length_px: float,
    pixel_error: float
) -> Dict[str, float]:
    """
    First-order error propagation of a pixel error through stereo geometry.

    Depth error grows with the square of the depth (Z^2 e / (B f)); lateral
    error linearly (Z e / f).

    Returns:
        Dict[str, float]: depth, lateral and combined (root-sum-square) errors
            in world units
    """
    if baseline <= 0 or focal_length_px <= 0:
        raise ValueError(f"baseline and focal length must be positive, got {baseline}, {focal_length_px}")

    depth_error = depth * depth * pixel_error / (baseline * focal_length_px)
    lateral_error = abs(depth) * pixel_error / focal_length_px
    return {
        'depth': float(depth_error),
        'lateral': float(lateral_error),
        'total': float(np.hypot(depth_error, lateral_error))
    }


def triangulation_angle(point: np.ndarray, camera_centers: Sequence[np.ndarray]) -> float:
    """Largest angle in degrees between the rays from ``point`` to any two camera centres."""
    rays = [np.asarray(c, dtype=np.float64) - point for c in camera_centers]
    rays = [r / np.linalg.norm(r) for r in rays if np.linalg.norm(r) > 0]

    largest = 0.0
    for i in range(len(rays)):
        for j in range(i + 1, len(rays)):
            cosine = np.clip(rays[i] @ rays[j], -1.0, 1.0)
            largest = max(largest, float(np.degrees(np.arccos(cosine))))
    return largest


def monocular_estimate(
    pixels: np.ndarray,
    intrinsics: CameraIntrinsics,
    pixel_reference: float,
    real_reference: float
) -> np.ndarray:
    """
    Pinhole estimate of camera-frame points from a single view.

    Every point is placed on the fronto-parallel plane where one pixel spans
    real_reference / pixel_reference world units.

    Returns:
        np.ndarray: (N, 3) points in the camera frame
    """
    if pixel_reference <= 0 or real_reference <= 0:
        raise ValueError(f"Reference distances must be positive, got {pixel_reference}, {real_reference}")

    scale = real_reference / pixel_reference
    focal = 0.5 * (intrinsics.fx + intrinsics.fy)
    return np.column_stack((
        (pixels[:, 0] - intrinsics.cx) * scale,
        (pixels[:, 1] - intrinsics.cy) * scale,
        np.full(len(pixels), focal * scale)
    ))
