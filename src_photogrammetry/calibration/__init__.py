"""
Camera calibration module.

This module contains the distorted pinhole projection model, DLT pose and
projection estimation, and the Levenberg-Marquardt camera calibrator.
"""

from .projection import project_point, project_points, project_with_parameters, distort_normalized
from .pose_estimator import (
    estimate_pose,
    estimate_projection_matrix,
    decompose_projection_matrix,
    normalized_image_points
)
from .calibrator import CameraCalibrator, calibrate_camera

__all__ = [
    'project_point',
    'project_points',
    'project_with_parameters',
    'distort_normalized',
    'estimate_pose',
    'estimate_projection_matrix',
    'decompose_projection_matrix',
    'normalized_image_points',
    'CameraCalibrator',
    'calibrate_camera'
]
