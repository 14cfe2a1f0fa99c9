"""
Pinhole projection with Brown-Conrady lens distortion.

World points are moved into the camera frame (R X + t), normalized by depth,
distorted radially (k1, k2, k3) and tangentially (p1, p2), then mapped to
pixels with the focal lengths and principal point.
"""

import numpy as np

from utils.point_processor import PointProcessor
from ..data_models import CameraIntrinsics, CameraExtrinsics, Vector2D, Vector3D
from ..exceptions import DegenerateTransform

DEPTH_TOLERANCE = 1e-10


def distort_normalized(x: np.ndarray, y: np.ndarray, coefficients) -> tuple:
    """
    Apply radial and tangential distortion to normalized image coordinates.

    Args:
        x, y: Normalized coordinates (X/Z, Y/Z)
        coefficients: (k1, k2, p1, p2, k3)

    Returns:
        Tuple of distorted (x, y)
    """
    k1, k2, p1, p2, k3 = coefficients
    r2 = x * x + y * y
    radial = 1.0 + k1 * r2 + k2 * r2 * r2 + k3 * r2 * r2 * r2
    x_distorted = x * radial + 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
    y_distorted = y * radial + p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
    return x_distorted, y_distorted


def project_with_parameters(
    world_points: np.ndarray,
    intrinsic_vector: np.ndarray,
    rotation: np.ndarray,
    translation: np.ndarray
) -> np.ndarray:
    """
    Project (N, 3) world points given raw parameter arrays.

    ``intrinsic_vector`` follows ``CameraIntrinsics.PARAMETER_ORDER``. This is
    the form evaluated repeatedly by the calibrator.

    Raises:
        DegenerateTransform: If a point lies on the camera plane
    """
    fx, fy, cx, cy, k1, k2, p1, p2, k3 = intrinsic_vector
    camera_points = world_points @ rotation.T + translation.reshape(1, 3)
    depth = camera_points[:, 2]

    if np.any(np.abs(depth) < DEPTH_TOLERANCE):
        raise DegenerateTransform("Point lies on the camera plane (Z ~ 0)")

    x = camera_points[:, 0] / depth
    y = camera_points[:, 1] / depth
    x_d, y_d = distort_normalized(x, y, (k1, k2, p1, p2, k3))

    return np.column_stack((fx * x_d + cx, fy * y_d + cy))


def project_points(world_points, intrinsics: CameraIntrinsics, extrinsics: CameraExtrinsics) -> np.ndarray:
    """
    Project world points into pixel coordinates.

    Args:
        world_points: Sequence of Vector3D or (N, 3) array
        intrinsics: Camera intrinsics including distortion
        extrinsics: World-to-camera pose

    Returns:
        np.ndarray: (N, 2) pixel coordinates
    """
    points = PointProcessor.as_point_array(world_points, 3, "world_points")
    return project_with_parameters(
        points,
        intrinsics.to_parameter_vector(),
        np.array(extrinsics.rotation),
        extrinsics.translation_vector
    )


def project_point(world_point: Vector3D, intrinsics: CameraIntrinsics, extrinsics: CameraExtrinsics) -> Vector2D:
    """Project a single world point to a pixel."""
    return Vector2D.from_array(project_points([world_point], intrinsics, extrinsics)[0])
