"""
Matrix calculation utilities for rectified stereo rigs.

This module builds the projection matrices of an ideal rectified pair and
the 4x4 Q matrix that OpenCV uses to reproject disparity to 3D.
"""

import numpy as np

from utils.logger_config import get_logger
from utils.stereo_math import StereoMath

logger = get_logger(__name__)


class MatrixCalculator:
    """Handles matrix calculations for rectified stereo pairs."""

    def __init__(self):
        self.logger = get_logger(__name__)

    @staticmethod
    def rectified_projection_matrices(focal_length_px: float, cx: float, cy: float, baseline: float):
        """
        P1 = K [I | 0] and P2 = K [I | (-baseline, 0, 0)] of a horizontal rig.

        Returns:
            Tuple (P1, P2) of 3x4 matrices
        """
        if focal_length_px <= 0 or baseline <= 0:
            raise ValueError(f"focal length and baseline must be positive, got {focal_length_px}, {baseline}")

        P1 = np.zeros((3, 4), dtype=np.float64)
        P1[0, 0] = P1[1, 1] = focal_length_px
        P1[0, 2] = cx
        P1[1, 2] = cy
        P1[2, 2] = 1.0

        P2 = P1.copy()
        P2[0, 3] = -baseline * focal_length_px
        return P1, P2

    def calculate_q_matrix_from_projection_matrices(self, P1: np.ndarray, P2: np.ndarray) -> np.ndarray:
        """
        Calculate Q matrix from rectified projection matrices.

        Args:
            P1: Left camera projection matrix (3x4)
            P2: Right camera projection matrix (3x4)

        Returns:
            np.ndarray: 4x4 Q matrix for disparity-to-depth conversion

        Raises:
            ValueError: If projection matrices are invalid
        """
        StereoMath.validate_projection_matrix(P1, "P1")
        StereoMath.validate_projection_matrix(P2, "P2")

        fx = P1[0, 0]
        cx = P1[0, 2]
        cy = P1[1, 2]

        # For a horizontal rig P2[0,3] = -fx * baseline
        baseline_x = P2[0, 3] / P2[0, 0]
        if abs(baseline_x) < 1e-12:
            raise ValueError("Projection matrices describe a zero baseline")

        Q = np.zeros((4, 4), dtype=np.float64)
        Q[0, 0] = 1.0
        Q[1, 1] = 1.0
        Q[0, 3] = -cx
        Q[1, 3] = -cy
        Q[2, 3] = fx
        Q[3, 2] = -1.0 / baseline_x
        Q[3, 3] = (cx - P2[0, 2]) / baseline_x

        baseline = StereoMath.calculate_baseline_from_projection_matrices(P1, P2)
        self.logger.debug(f"Q matrix: fx={fx:.2f}, cx={cx:.2f}, cy={cy:.2f}, baseline={baseline:.4f}")
        return Q
