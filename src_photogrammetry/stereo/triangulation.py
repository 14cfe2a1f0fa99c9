"""
Linear (DLT) triangulation of 3D points from two or more calibrated views.

Every view contributes two rows x P3 - P1 and y P3 - P2 to a homogeneous
system whose null vector is the point. Rows are normalized and columns
equilibrated before the SVD so that pixel-scale and metric-scale entries do
not dominate each other.
"""

import cv2
import numpy as np
from typing import List, Sequence

from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from ..data_models import CameraExtrinsics, CameraIntrinsics, CameraParameters, Vector2D, Vector3D
from ..exceptions import InsufficientCorrespondences, TriangulationFailure
from ..linear_algebra import multiply3x3, null_space_vector

logger = get_logger(__name__)

HOMOGENEOUS_TOLERANCE = 1e-10
# Second-smallest to largest singular value ratio below which the point is not unique
UNIQUENESS_TOLERANCE = 1e-6
CENTER_TOLERANCE = 1e-9


def construct_projection_matrix(intrinsics: CameraIntrinsics, extrinsics: CameraExtrinsics) -> np.ndarray:
    """P = K [R | t]."""
    K = intrinsics.camera_matrix
    KR = multiply3x3(K, extrinsics.rotation)
    Kt = K @ extrinsics.translation_vector
    return np.hstack((KR, Kt.reshape(3, 1)))


def camera_center_from_projection(P: np.ndarray) -> np.ndarray:
    """
    Optical centre as the right null vector of P.

    Returns:
        np.ndarray: Homogeneous centre (4,), unit norm
    """
    center, _ = null_space_vector(P)
    return center


def _check_centers(centers: Sequence[np.ndarray]) -> None:
    """Fail when every view shares one optical centre (no baseline)."""
    finite = [c[:3] / c[3] for c in centers if abs(c[3]) > HOMOGENEOUS_TOLERANCE]
    if len(finite) < len(centers):
        return

    scale = max(1.0, max(np.linalg.norm(c) for c in finite))
    spread = max(np.linalg.norm(a - b) for a in finite for b in finite)
    if spread < CENTER_TOLERANCE * scale:
        raise TriangulationFailure("Camera centres coincide; views have no baseline")


def _solve_point(projections: Sequence[np.ndarray], observations: Sequence[np.ndarray]) -> np.ndarray:
    rows = []
    for P, (x, y) in zip(projections, observations):
        rows.append(x * P[2] - P[0])
        rows.append(y * P[2] - P[1])
    A = np.array(rows)

    row_norms = np.linalg.norm(A, axis=1)
    A = A / np.where(row_norms > 0, row_norms, 1.0)[:, None]
    column_norms = np.linalg.norm(A, axis=0)
    column_norms = np.where(column_norms > 0, column_norms, 1.0)

    solution, singular_values = null_space_vector(A / column_norms)
    if singular_values[1] < UNIQUENESS_TOLERANCE * singular_values[-1]:
        raise TriangulationFailure("Triangulation system has no unique solution; views are not diverse")

    X = solution / column_norms
    X = X / np.linalg.norm(X)
    if abs(X[3]) < HOMOGENEOUS_TOLERANCE:
        raise TriangulationFailure("Homogeneous coordinate ~0; point lies at infinity")
    return X[:3] / X[3]


def triangulate(left_point: Vector2D, right_point: Vector2D, P1: np.ndarray, P2: np.ndarray) -> Vector3D:
    """
    Triangulate one correspondence from two projection matrices.

    Args:
        left_point: Pixel in the first view
        right_point: Pixel in the second view
        P1: 3x4 projection matrix of the first view
        P2: 3x4 projection matrix of the second view

    Returns:
        Vector3D: Point in the world frame of P1/P2

    Raises:
        TriangulationFailure: Coincident camera centres, non-unique solution
            or point at infinity
    """
    P1 = np.asarray(P1, dtype=np.float64)
    P2 = np.asarray(P2, dtype=np.float64)
    if P1.shape != (3, 4) or P2.shape != (3, 4):
        raise ValueError(f"Projection matrices must be 3x4, got {P1.shape} and {P2.shape}")

    _check_centers([camera_center_from_projection(P1), camera_center_from_projection(P2)])

    observations = PointProcessor.as_point_array([left_point, right_point], 2)
    return Vector3D.from_array(_solve_point((P1, P2), observations))


def undistort_observations(points: np.ndarray, intrinsics: CameraIntrinsics) -> np.ndarray:
    """Remove lens distortion, keeping pixel units."""
    K = intrinsics.camera_matrix
    undistorted = cv2.undistortPoints(
        points.reshape(-1, 1, 2).astype(np.float64), K, intrinsics.distortion_coefficients, P=K
    )
    return undistorted.reshape(-1, 2)


def multi_view_triangulate(
    points_2d: Sequence,
    cameras: Sequence[CameraParameters],
    undistort: bool = True
) -> List[Vector3D]:
    """
    Triangulate every point observed in all of N >= 2 views.

    Args:
        points_2d: points_2d[view][point] pixels, same point order per view
        cameras: Calibration of each view
        undistort: Remove lens distortion of cameras that have it first

    Returns:
        List[Vector3D]: One world point per observed point

    Raises:
        InsufficientCorrespondences: Fewer than two views
        ValueError: Per-view point counts differ
        TriangulationFailure: Degenerate geometry for any point
    """
    if len(cameras) < 2:
        raise InsufficientCorrespondences(2, len(cameras), "views")
    if len(points_2d) != len(cameras):
        raise ValueError(f"Got points for {len(points_2d)} views but {len(cameras)} cameras")

    observations = [PointProcessor.as_point_array(view, 2, f"points_2d[{index}]")
                    for index, view in enumerate(points_2d)]
    counts = {len(view) for view in observations}
    if len(counts) != 1:
        raise ValueError(f"Every view must observe the same number of points, got {[len(v) for v in observations]}")

    if undistort:
        observations = [undistort_observations(view, camera.intrinsics) if camera.intrinsics.has_distortion
                        else view for view, camera in zip(observations, cameras)]

    projections = [construct_projection_matrix(camera.intrinsics, camera.extrinsics) for camera in cameras]
    centers = [np.append(camera.extrinsics.camera_center, 1.0) for camera in cameras]
    _check_centers(centers)

    points = []
    for index in range(counts.pop()):
        try:
            points.append(Vector3D.from_array(
                _solve_point(projections, [view[index] for view in observations])
            ))
        except TriangulationFailure as e:
            logger.error(f"Triangulation failed for point {index}: {e}")
            raise

    logger.debug(f"Triangulated {len(points)} points from {len(cameras)} views")
    return points


def triangulate_points(
    left_points,
    right_points,
    left_camera: CameraParameters,
    right_camera: CameraParameters,
    undistort: bool = True
) -> np.ndarray:
    """Batch two-view triangulation returning an (N, 3) array."""
    points = multi_view_triangulate([left_points, right_points], [left_camera, right_camera], undistort)
    return np.array([p.to_array() for p in points]).reshape(-1, 3)
