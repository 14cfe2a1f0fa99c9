"""
Stereo vision mathematical utilities.

This module provides validations for camera matrices, poses and projection
matrices, plus reprojection statistics shared by calibration, triangulation
and measurement.
"""

import numpy as np
from typing import Tuple, Dict, Any, Sequence

from utils.logger_config import get_logger

logger = get_logger(__name__)


class StereoMath:
    """Mathematical utilities for stereo vision calculations."""

    @staticmethod
    def validate_camera_matrix(K: np.ndarray, matrix_name: str = "K") -> bool:
        """
        Validate camera intrinsic matrix.

        Args:
            K: 3x3 camera matrix
            matrix_name: Name for error messages

        Returns:
            bool: True if valid

        Raises:
            ValueError: If matrix is invalid
        """
        if K.shape != (3, 3):
            raise ValueError(f"{matrix_name} must be 3x3, got {K.shape}")

        fx, fy = K[0, 0], K[1, 1]
        if fx <= 0 or fy <= 0:
            raise ValueError(f"{matrix_name} focal lengths must be positive: fx={fx}, fy={fy}")

        if not np.allclose(K[2, :], [0, 0, 1]):
            raise ValueError(f"{matrix_name} bottom row must be [0, 0, 1]")

        return True

    @staticmethod
    def validate_distortion_coefficients(d: np.ndarray, coeff_name: str = "d") -> bool:
        """
        Validate distortion coefficients (k1, k2, p1, p2, k3).

        Raises:
            ValueError: If coefficients are invalid
        """
        if d.ndim != 1:
            raise ValueError(f"{coeff_name} must be 1D array, got shape {d.shape}")

        if len(d) != 5:
            raise ValueError(f"{coeff_name} must hold 5 coefficients, got {len(d)}")

        if np.any(np.isnan(d)) or np.any(np.isinf(d)):
            raise ValueError(f"{coeff_name} contains NaN or infinite values")

        return True

    @staticmethod
    def validate_rotation_matrix(R: np.ndarray, matrix_name: str = "R", atol: float = 1e-6) -> bool:
        """
        Validate rotation matrix.

        Args:
            R: 3x3 rotation matrix
            matrix_name: Name for error messages
            atol: Absolute tolerance of the orthonormality checks

        Returns:
            bool: True if valid

        Raises:
            ValueError: If matrix is invalid
        """
        if R.shape != (3, 3):
            raise ValueError(f"{matrix_name} must be 3x3, got {R.shape}")

        if not np.all(np.isfinite(R)):
            raise ValueError(f"{matrix_name} contains NaN or infinite values")

        identity_check = R.T @ R
        if not np.allclose(identity_check, np.eye(3), atol=atol):
            raise ValueError(f"{matrix_name} is not orthogonal")

        # Proper rotation, not reflection
        det = np.linalg.det(R)
        if not np.isclose(det, 1.0, atol=atol):
            raise ValueError(f"{matrix_name} determinant must be 1, got {det}")

        return True

    @staticmethod
    def validate_translation_vector(T: np.ndarray, vector_name: str = "T") -> bool:
        """
        Validate translation vector.

        Raises:
            ValueError: If vector is invalid
        """
        if T.shape not in [(3,), (3, 1)]:
            raise ValueError(f"{vector_name} must have shape (3,) or (3,1), got {T.shape}")

        if np.any(np.isnan(T)) or np.any(np.isinf(T)):
            raise ValueError(f"{vector_name} contains NaN or infinite values")

        return True

    @staticmethod
    def validate_projection_matrix(P: np.ndarray, matrix_name: str = "P") -> bool:
        """
        Validate a general 3x4 projection matrix.

        The left 3x3 block must be non-singular, otherwise the camera has no
        finite centre.

        Raises:
            ValueError: If matrix is invalid
        """
        if P.shape != (3, 4):
            raise ValueError(f"{matrix_name} must be 3x4, got {P.shape}")

        if not np.all(np.isfinite(P)):
            raise ValueError(f"{matrix_name} contains NaN or infinite values")

        if abs(np.linalg.det(P[:, :3])) < 1e-12 * max(np.abs(P[:, :3]).max(), 1.0) ** 3:
            raise ValueError(f"{matrix_name} has a singular left 3x3 block")

        return True

    @staticmethod
    def calculate_baseline_from_projection_matrices(
        P1: np.ndarray,
        P2: np.ndarray
    ) -> float:
        """
        Calculate baseline from rectified projection matrices.

        For a horizontal rectified rig P2[0, 3] = -fx * Tx.

        Returns:
            float: Baseline distance
        """
        baseline = abs(P2[0, 3] / P2[0, 0])

        if baseline < 1e-6:
            logger.warning(f"Very small baseline detected: {baseline}")

        return baseline

    @staticmethod
    def calculate_reprojection_errors(
        projected_2d: np.ndarray,
        observed_2d: np.ndarray
    ) -> np.ndarray:
        """
        Per-point Euclidean distance between projected and observed pixels.

        Args:
            projected_2d: Projected points (Nx2)
            observed_2d: Observed points (Nx2)

        Returns:
            np.ndarray: Distances (N,)
        """
        if projected_2d.shape != observed_2d.shape:
            raise ValueError(f"Point arrays must match: {projected_2d.shape} vs {observed_2d.shape}")
        return np.linalg.norm(projected_2d - observed_2d, axis=1)

    @staticmethod
    def summarize_errors(errors: np.ndarray) -> Dict[str, float]:
        """Mean / RMS / max of a set of reprojection distances."""
        if errors.size == 0:
            return {'mean': 0.0, 'rms': 0.0, 'max': 0.0}
        return {
            'mean': float(np.mean(errors)),
            'rms': float(np.sqrt(np.mean(errors ** 2))),
            'max': float(np.max(errors)),
        }


class GeometryValidator:
    """Validates geometric consistency of multi-camera setups."""

    @staticmethod
    def validate_camera_setup(
        camera_matrices: Sequence[np.ndarray],
        camera_centers: Sequence[np.ndarray],
        image_size: Tuple[int, int] = None
    ) -> Dict[str, Any]:
        """
        Validation of a set of calibrated views before triangulation.

        Args:
            camera_matrices: 3x3 K matrix of each view
            camera_centers: Optical centre of each view in world units
            image_size: Optional (width, height) to check principal points

        Returns:
            Dict[str, Any]: Validation results and metrics
        """
        results = {
            'valid': True,
            'warnings': [],
            'errors': [],
            'metrics': {}
        }

        try:
            for index, K in enumerate(camera_matrices):
                StereoMath.validate_camera_matrix(K, f"K[{index}]")

            centers = np.asarray(camera_centers, dtype=np.float64)
            if len(centers) >= 2:
                baselines = [
                    float(np.linalg.norm(centers[i] - centers[j]))
                    for i in range(len(centers)) for j in range(i + 1, len(centers))
                ]
                results['metrics']['min_baseline'] = min(baselines)
                results['metrics']['max_baseline'] = max(baselines)
                if min(baselines) < 1e-6:
                    results['warnings'].append("Two views share the same optical centre")

            focal_lengths = [K[0, 0] for K in camera_matrices] + [K[1, 1] for K in camera_matrices]
            focal_spread = max(focal_lengths) - min(focal_lengths)
            results['metrics']['focal_length_spread'] = focal_spread
            if focal_spread > 0.1 * np.mean(focal_lengths):
                results['warnings'].append(f"Large focal length spread: {focal_spread:.2f} pixels")

            if image_size is not None:
                width, height = image_size
                for index, K in enumerate(camera_matrices):
                    if not (0 <= K[0, 2] <= width and 0 <= K[1, 2] <= height):
                        results['warnings'].append(f"Principal point of view {index} outside image bounds")

        except ValueError as e:
            results['valid'] = False
            results['errors'].append(str(e))

        return results
