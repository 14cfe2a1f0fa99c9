"""
Stereo and multi-view module.

This module contains projection matrix construction, DLT triangulation,
dense disparity engines, disparity-to-depth conversion and Q-matrix
reprojection for rectified stereo rigs.
"""

from .triangulation import (
    construct_projection_matrix,
    camera_center_from_projection,
    triangulate,
    multi_view_triangulate,
    triangulate_points
)
from .block_matching import BlockMatchingEngine
from .sgbm_engine import SGBMEngine
from .parameter_calculator import DisparityParameterCalculator
from .matrix_calculator import MatrixCalculator
from .disparity_processor import (
    compute_disparity_map,
    disparity_to_depth,
    disparity_to_point_cloud,
    StereoProcessor
)

__all__ = [
    'construct_projection_matrix',
    'camera_center_from_projection',
    'triangulate',
    'multi_view_triangulate',
    'triangulate_points',
    'BlockMatchingEngine',
    'SGBMEngine',
    'DisparityParameterCalculator',
    'MatrixCalculator',
    'compute_disparity_map',
    'disparity_to_depth',
    'disparity_to_point_cloud',
    'StereoProcessor'
]
