"""
Fundamental matrix estimation for uncalibrated two-view geometry.

Uses the normalized 8-point algorithm inside RANSAC. Each estimate is forced
to rank 2 by zeroing its smallest singular value.
"""

import numpy as np
from typing import Optional, Tuple

from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from ..data_models import FundamentalMatrix
from ..exceptions import InsufficientCorrespondences, NoValidFundamentalMatrix
from ..linear_algebra import null_space_vector, svd3x3

logger = get_logger(__name__)

MIN_CORRESPONDENCES = 8
RANK_TOLERANCE = 1e-8


def _eight_point(pts1: np.ndarray, pts2: np.ndarray) -> Tuple[np.ndarray, bool]:
    p1, T1 = PointProcessor.normalize_points(pts1)
    p2, T2 = PointProcessor.normalize_points(pts2)

    u1, v1 = p1[:, 0], p1[:, 1]
    u2, v2 = p2[:, 0], p2[:, 1]
    A = np.column_stack((
        u2 * u1, u2 * v1, u2,
        v2 * u1, v2 * v1, v2,
        u1, v1, np.ones(len(p1))
    ))

    f, singular_values = null_space_vector(A)
    degenerate = singular_values[1] < RANK_TOLERANCE * singular_values[-1]

    # Closest rank-2 matrix
    U, S, V = svd3x3(f.reshape(3, 3))
    F_normalized = U @ np.diag([S[0], S[1], 0.0]) @ V.T

    F = T2.T @ F_normalized @ T1
    return F / np.linalg.norm(F), degenerate


def epipolar_distance(F: np.ndarray, pts1, pts2) -> np.ndarray:
    """
    Symmetric point-to-epipolar-line distance per correspondence.

    Returns the mean of the distance of x2 to the line F x1 and of x1 to the
    line F^T x2, in pixels.
    """
    x1 = PointProcessor.to_homogeneous(PointProcessor.as_point_array(pts1, 2, "pts1"))
    x2 = PointProcessor.to_homogeneous(PointProcessor.as_point_array(pts2, 2, "pts2"))

    lines2 = x1 @ F.T
    lines1 = x2 @ F
    algebraic = np.abs(np.sum(x2 * lines2, axis=1))

    norm2 = np.maximum(np.hypot(lines2[:, 0], lines2[:, 1]), 1e-300)
    norm1 = np.maximum(np.hypot(lines1[:, 0], lines1[:, 1]), 1e-300)
    return 0.5 * (algebraic / norm2 + algebraic / norm1)


def compute_fundamental_matrix(
    pts1,
    pts2,
    threshold: float = 1.0,
    max_iterations: int = 1000,
    seed: Optional[int] = None
) -> FundamentalMatrix:
    """
    Robustly estimate F with x2^T F x1 = 0.

    Args:
        pts1: (N, 2) points in the first image, N >= 8
        pts2: (N, 2) corresponding points in the second image
        threshold: Inlier epipolar distance in pixels
        max_iterations: Number of RANSAC samples
        seed: Seed of the sampling generator

    Returns:
        FundamentalMatrix: Unit-norm rank-2 F with its inlier mask

    Raises:
        InsufficientCorrespondences: If fewer than 8 pairs are given
        NoValidFundamentalMatrix: If no sample reaches 8 inliers
    """
    a = PointProcessor.as_point_array(pts1, 2, "pts1")
    b = PointProcessor.as_point_array(pts2, 2, "pts2")
    if len(a) != len(b):
        raise ValueError(f"Point sets differ in length: {len(a)} vs {len(b)}")
    if len(a) < MIN_CORRESPONDENCES:
        raise InsufficientCorrespondences(MIN_CORRESPONDENCES, len(a))

    rng = np.random.default_rng(seed)
    n = len(a)
    best_F = None
    best_mask = np.zeros(n, dtype=bool)

    for _ in range(max_iterations):
        sample = rng.choice(n, size=MIN_CORRESPONDENCES, replace=False)
        F, degenerate = _eight_point(a[sample], b[sample])
        if degenerate or not np.all(np.isfinite(F)):
            continue

        mask = epipolar_distance(F, a, b) < threshold
        if mask.sum() > best_mask.sum():
            best_F, best_mask = F, mask
            if mask.all():
                break

    if best_F is None or best_mask.sum() < MIN_CORRESPONDENCES:
        raise NoValidFundamentalMatrix(
            f"Best hypothesis reached {int(best_mask.sum())} inliers out of {n}; at least 8 required"
        )

    refined, degenerate = _eight_point(a[best_mask], b[best_mask])
    if not degenerate and np.all(np.isfinite(refined)):
        refined_mask = epipolar_distance(refined, a, b) < threshold
        if refined_mask.sum() >= best_mask.sum():
            best_F, best_mask = refined, refined_mask

    confidence = float(best_mask.sum()) / n
    logger.info(f"Fundamental matrix estimated: {int(best_mask.sum())}/{n} inliers")
    return FundamentalMatrix(F=best_F, confidence=confidence, inlier_mask=best_mask)
