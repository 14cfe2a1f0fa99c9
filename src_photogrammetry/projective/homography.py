"""
Robust planar homography estimation.

Homographies are solved with the Hartley-normalized DLT and made robust
against mismatched correspondences with RANSAC: random 4-point samples are
fitted, scored by forward transfer distance, and the best consensus set is
refitted as a whole.
"""

import numpy as np
from typing import Optional, Tuple

from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from ..data_models import HomographyMatrix, Vector2D
from ..exceptions import (
    DegenerateTransform, InsufficientCorrespondences, NoValidHomography
)
from ..linear_algebra import invert3x3, null_space_vector

logger = get_logger(__name__)

MIN_CORRESPONDENCES = 4
HOMOGENEOUS_TOLERANCE = 1e-10
# Second-smallest to largest singular value ratio below which a sample is degenerate
RANK_TOLERANCE = 1e-8


def _solve_dlt(src: np.ndarray, dst: np.ndarray) -> Tuple[np.ndarray, bool]:
    src_n, T_src = PointProcessor.normalize_points(src)
    dst_n, T_dst = PointProcessor.normalize_points(dst)

    n = len(src_n)
    A = np.zeros((2 * n, 9))
    x, y = src_n[:, 0], src_n[:, 1]
    u, v = dst_n[:, 0], dst_n[:, 1]
    A[0::2, 0], A[0::2, 1], A[0::2, 2] = -x, -y, -1.0
    A[0::2, 6], A[0::2, 7], A[0::2, 8] = u * x, u * y, u
    A[1::2, 3], A[1::2, 4], A[1::2, 5] = -x, -y, -1.0
    A[1::2, 6], A[1::2, 7], A[1::2, 8] = v * x, v * y, v

    h, singular_values = null_space_vector(A)
    degenerate = singular_values[1] < RANK_TOLERANCE * singular_values[-1]

    H = invert3x3(T_dst) @ h.reshape(3, 3) @ T_src
    return _normalize(H), degenerate


def _normalize(H: np.ndarray) -> np.ndarray:
    if abs(H[2, 2]) > HOMOGENEOUS_TOLERANCE:
        return H / H[2, 2]
    return H / np.linalg.norm(H)


def homography_dlt(src_points, dst_points) -> np.ndarray:
    """
    Least-squares homography over all given correspondences.

    Args:
        src_points: (N, 2) source points, N >= 4
        dst_points: (N, 2) destination points

    Returns:
        np.ndarray: 3x3 H with H[2, 2] = 1

    Raises:
        InsufficientCorrespondences: If fewer than 4 pairs are given
        DegenerateTransform: If the points do not determine a unique H
            (e.g. three of four collinear)
    """
    src = PointProcessor.as_point_array(src_points, 2, "src_points")
    dst = PointProcessor.as_point_array(dst_points, 2, "dst_points")
    if len(src) != len(dst):
        raise ValueError(f"Point sets differ in length: {len(src)} vs {len(dst)}")
    if len(src) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondences(MIN_CORRESPONDENCES, len(src))

    H, degenerate = _solve_dlt(src, dst)
    if degenerate:
        raise DegenerateTransform("Correspondences do not determine a unique homography")
    return H


def transform_points(points, H: np.ndarray) -> np.ndarray:
    """
    Apply a homography to (N, 2) points.

    Raises:
        DegenerateTransform: If any point maps to infinity (|w| < 1e-10)
    """
    array = PointProcessor.as_point_array(points, 2)
    mapped = PointProcessor.to_homogeneous(array) @ np.asarray(H, dtype=np.float64).T
    w = mapped[:, 2]
    if np.any(np.abs(w) < HOMOGENEOUS_TOLERANCE):
        raise DegenerateTransform("Homogeneous coordinate w ~ 0; point maps to infinity")
    return mapped[:, :2] / w[:, None]


def transform_point(point: Vector2D, H: np.ndarray) -> Vector2D:
    return Vector2D.from_array(transform_points([point], H)[0])


def _transfer_errors(H: np.ndarray, src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    mapped = PointProcessor.to_homogeneous(src) @ H.T
    w = mapped[:, 2]
    errors = np.full(len(src), np.inf)
    finite = np.abs(w) >= HOMOGENEOUS_TOLERANCE
    errors[finite] = np.linalg.norm(mapped[finite, :2] / w[finite, None] - dst[finite], axis=1)
    return errors


def compute_homography(
    src_points,
    dst_points,
    threshold: float = 3.0,
    max_iterations: int = 1000,
    seed: Optional[int] = None
) -> HomographyMatrix:
    """
    Estimate the homography mapping ``src_points`` onto ``dst_points``.

    Args:
        src_points: Sequence of Vector2D or (N, 2) array
        dst_points: Corresponding destination points
        threshold: Inlier transfer distance in pixels
        max_iterations: Number of RANSAC samples
        seed: Seed of the sampling generator for reproducible results

    Returns:
        HomographyMatrix: H normalized to H[2, 2] = 1 with its consensus set

    Raises:
        InsufficientCorrespondences: If fewer than 4 pairs are given
        NoValidHomography: If no sample reaches 4 inliers
    """
    src = PointProcessor.as_point_array(src_points, 2, "src_points")
    dst = PointProcessor.as_point_array(dst_points, 2, "dst_points")
    if len(src) != len(dst):
        raise ValueError(f"Point sets differ in length: {len(src)} vs {len(dst)}")
    if len(src) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondences(MIN_CORRESPONDENCES, len(src))
    if threshold <= 0 or max_iterations <= 0:
        raise ValueError(f"threshold and max_iterations must be positive, got {threshold}, {max_iterations}")

    rng = np.random.default_rng(seed)
    n = len(src)

    best_H = None
    best_mask = np.zeros(n, dtype=bool)
    degenerate_samples = 0

    for _ in range(max_iterations):
        sample = rng.choice(n, size=MIN_CORRESPONDENCES, replace=False)
        H, degenerate = _solve_dlt(src[sample], dst[sample])
        if degenerate or not np.all(np.isfinite(H)):
            degenerate_samples += 1
            continue

        mask = _transfer_errors(H, src, dst) < threshold
        if mask.sum() > best_mask.sum():
            best_H, best_mask = H, mask
            if mask.all():
                break

    if degenerate_samples:
        logger.debug(f"Skipped {degenerate_samples} degenerate samples")

    if best_H is None or best_mask.sum() < MIN_CORRESPONDENCES:
        raise NoValidHomography(
            f"Best hypothesis reached {int(best_mask.sum())} inliers out of {n}; at least 4 required"
        )

    best_H, best_mask = _refine(best_H, best_mask, src, dst, threshold)

    inlier_count = int(best_mask.sum())
    confidence = inlier_count / n
    logger.info(f"Homography estimated: {inlier_count}/{n} inliers (confidence={confidence:.3f})")

    return HomographyMatrix(
        H=best_H,
        confidence=confidence,
        inliers=[Vector2D.from_array(p) for p in src[best_mask]],
        outliers=[Vector2D.from_array(p) for p in src[~best_mask]],
        inlier_mask=best_mask
    )


def _refine(H: np.ndarray, mask: np.ndarray, src: np.ndarray, dst: np.ndarray,
            threshold: float) -> Tuple[np.ndarray, np.ndarray]:
    """Refit on the whole consensus set; keep the sample fit if inliers are lost."""
    refined, degenerate = _solve_dlt(src[mask], dst[mask])
    if degenerate or not np.all(np.isfinite(refined)):
        logger.warning("Homography refinement failed; using the un-refined sample estimate")
        return H, mask

    refined_mask = _transfer_errors(refined, src, dst) < threshold
    if refined_mask.sum() < mask.sum():
        logger.warning(f"Refinement dropped inliers ({int(refined_mask.sum())} < {int(mask.sum())}); "
                       f"using the un-refined sample estimate")
        return H, mask

    return refined, refined_mask
