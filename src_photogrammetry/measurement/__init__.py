"""
Photogrammetric measurement module.

This module contains the measurement orchestrator and the accuracy and
extent analysis of measured point sets.
"""

from .photogrammetry import PhotogrammetricMeasurer, measure_object
from .accuracy import (
    compute_object_dimensions,
    stereo_uncertainty,
    triangulation_angle,
    monocular_estimate
)

__all__ = [
    'PhotogrammetricMeasurer',
    'measure_object',
    'compute_object_dimensions',
    'stereo_uncertainty',
    'triangulation_angle',
    'monocular_estimate'
]
