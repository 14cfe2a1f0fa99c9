"""
Photogrammetric measurement core.

This package provides the geometric computer-vision core used to measure
real-world objects from calibrated camera views: the linear algebra kernel,
camera calibration, projective geometry, stereo triangulation and dense
disparity, and the measurement orchestrator.
"""

from .data_models import (
    Vector2D,
    Vector3D,
    CameraIntrinsics,
    CameraExtrinsics,
    CameraParameters,
    HomographyMatrix,
    FundamentalMatrix,
    PerspectiveCorrection,
    StereoPair,
    CalibrationResult,
    ReferenceScale,
    ObjectDimensions,
    PhotogrammetricMeasurement
)
from .measurement import PhotogrammetricMeasurer, measure_object

__all__ = [
    'Vector2D',
    'Vector3D',
    'CameraIntrinsics',
    'CameraExtrinsics',
    'CameraParameters',
    'HomographyMatrix',
    'FundamentalMatrix',
    'PerspectiveCorrection',
    'StereoPair',
    'CalibrationResult',
    'ReferenceScale',
    'ObjectDimensions',
    'PhotogrammetricMeasurement',
    'PhotogrammetricMeasurer',
    'measure_object'
]
