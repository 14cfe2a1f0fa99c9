"""
Camera pose and projection estimation by Direct Linear Transform.

Non-coplanar targets are solved as a full 3x4 projection in normalized camera
coordinates and split into rotation and translation with the RQ
decomposition. Planar targets leave that system rank-deficient, so their pose
is recovered from the plane-to-image homography instead.
"""

import cv2
import numpy as np
from typing import Tuple

from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from ..data_models import CameraIntrinsics, CameraExtrinsics
from ..exceptions import InsufficientCorrespondences
from ..linear_algebra import (
    invert3x3, solve_linear, jacobi_svd, svd3x3, null_space_vector, rq_decomposition
)
from ..projective.homography import homography_dlt

logger = get_logger(__name__)

MIN_POSE_POINTS = 6


def _check_correspondences(object_points, image_points) -> Tuple[np.ndarray, np.ndarray]:
    world = PointProcessor.as_point_array(object_points, 3, "object_points")
    pixels = PointProcessor.as_point_array(image_points, 2, "image_points")
    if len(world) != len(pixels):
        raise ValueError(f"Got {len(world)} object points but {len(pixels)} image points")
    if len(world) < MIN_POSE_POINTS:
        raise InsufficientCorrespondences(MIN_POSE_POINTS, len(world), "point correspondences")
    return world, pixels


def _dlt_rows(world: np.ndarray, image: np.ndarray) -> np.ndarray:
    homogeneous = PointProcessor.to_homogeneous(world)
    zeros = np.zeros_like(homogeneous)
    upper = np.hstack((homogeneous, zeros, -image[:, :1] * homogeneous))
    lower = np.hstack((zeros, homogeneous, -image[:, 1:2] * homogeneous))
    return np.vstack((upper, lower))


def estimate_projection_matrix(object_points, image_points) -> np.ndarray:
    """
    Pixel-space DLT for a 3x4 projection matrix.

    Both point sets are Hartley-normalized before the homogeneous solve. The
    returned matrix is scaled so its left 3x3 block has positive determinant,
    i.e. points in front of the camera have positive depth.

    Args:
        object_points: (N, 3) non-coplanar world points, N >= 6
        image_points: (N, 2) observed pixels

    Returns:
        np.ndarray: 3x4 projection matrix

    Raises:
        InsufficientCorrespondences: If fewer than 6 points are given
        ValueError: If the world points are coplanar
    """
    world, pixels = _check_correspondences(object_points, image_points)
    if PointProcessor.is_coplanar(world):
        raise ValueError("Projection matrix is not determined by coplanar points")

    world_n, T_world = PointProcessor.normalize_points(world)
    pixels_n, T_image = PointProcessor.normalize_points(pixels)

    p, _ = null_space_vector(_dlt_rows(world_n, pixels_n))
    P = invert3x3(T_image) @ p.reshape(3, 4) @ T_world

    if np.linalg.det(P[:, :3]) < 0:
        P = -P
    return P / np.linalg.norm(P[2, :3])


def decompose_projection_matrix(P: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Split P = K [R | t] into calibration, rotation and translation.

    Returns:
        Tuple (K, R, t) with K[2, 2] = 1 and det(R) = +1
    """
    P = np.asarray(P, dtype=np.float64)
    if np.linalg.det(P[:, :3]) < 0:
        P = -P

    K, R = rq_decomposition(P[:, :3])
    t = solve_linear(K, P[:, 3])
    return K / K[2, 2], R, t


def normalized_image_points(image_points: np.ndarray, intrinsics: CameraIntrinsics) -> np.ndarray:
    """Map pixels to undistorted normalized camera coordinates."""
    if intrinsics.has_distortion:
        undistorted = cv2.undistortPoints(
            image_points.reshape(-1, 1, 2).astype(np.float64),
            intrinsics.camera_matrix,
            intrinsics.distortion_coefficients
        )
        return undistorted.reshape(-1, 2)

    return np.column_stack((
        (image_points[:, 0] - intrinsics.cx) / intrinsics.fx,
        (image_points[:, 1] - intrinsics.cy) / intrinsics.fy
    ))


def estimate_pose(object_points, image_points, intrinsics: CameraIntrinsics) -> CameraExtrinsics:
    """
    Estimate the world-to-camera pose of one view (DLT PnP).

    Args:
        object_points: (N, 3) world points, N >= 6
        image_points: (N, 2) observed pixels
        intrinsics: Known or current estimate of the intrinsics

    Returns:
        CameraExtrinsics: Pose with the points in front of the camera

    Raises:
        InsufficientCorrespondences: If fewer than 6 points are given
        ValueError: If the point counts differ
    """
    world, pixels = _check_correspondences(object_points, image_points)
    normalized = normalized_image_points(pixels, intrinsics)

    if PointProcessor.is_coplanar(world):
        logger.debug("Coplanar target; estimating pose from plane homography")
        return _estimate_planar_pose(world, normalized)

    world_n, T_world = PointProcessor.normalize_points(world)
    p, _ = null_space_vector(_dlt_rows(world_n, normalized))
    P = p.reshape(3, 4) @ T_world

    if np.linalg.det(P[:, :3]) < 0:
        P = -P

    # With normalized coordinates the triangular factor is a scaled identity
    scale_matrix, R = rq_decomposition(P[:, :3])
    t = solve_linear(scale_matrix, P[:, 3])

    extrinsics = CameraExtrinsics(R, t)
    _warn_if_behind(world, extrinsics)
    return extrinsics


def _estimate_planar_pose(world: np.ndarray, normalized: np.ndarray) -> CameraExtrinsics:
    centroid = world.mean(axis=0)
    _, _, basis = jacobi_svd(world - centroid)
    e1, e2 = basis[:, 0], basis[:, 1]
    E = np.column_stack((e1, e2, np.cross(e1, e2)))

    plane = (world - centroid) @ E[:, :2]
    H = homography_dlt(plane, normalized)

    scale = 2.0 / (np.linalg.norm(H[:, 0]) + np.linalg.norm(H[:, 1]))
    if H[2, 2] * scale < 0:
        scale = -scale

    r1 = H[:, 0] * scale
    r2 = H[:, 1] * scale
    t_plane = H[:, 2] * scale

    U, _, V = svd3x3(np.column_stack((r1, r2, np.cross(r1, r2))))
    R_plane = U @ V.T
    if np.linalg.det(R_plane) < 0:
        U[:, 2] = -U[:, 2]
        R_plane = U @ V.T

    R = R_plane @ E.T
    extrinsics = CameraExtrinsics(R, t_plane - R @ centroid)
    _warn_if_behind(world, extrinsics)
    return extrinsics


def _warn_if_behind(world: np.ndarray, extrinsics: CameraExtrinsics) -> None:
    depths = world @ np.array(extrinsics.rotation)[2] + extrinsics.translation.z
    behind = int(np.sum(depths <= 0))
    if behind:
        logger.warning(f"{behind}/{len(depths)} points lie behind the estimated camera")
