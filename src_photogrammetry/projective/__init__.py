"""
Projective geometry module.

This module contains robust homography estimation, point transforms,
planar perspective correction and fundamental matrix estimation.
"""

from .homography import compute_homography, homography_dlt, transform_point, transform_points
from .perspective import correct_perspective
from .fundamental import compute_fundamental_matrix, epipolar_distance
from .estimator import ProjectiveEstimator

__all__ = [
    'compute_homography',
    'homography_dlt',
    'transform_point',
    'transform_points',
    'correct_perspective',
    'compute_fundamental_matrix',
    'epipolar_distance',
    'ProjectiveEstimator'
]
