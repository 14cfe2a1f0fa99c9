"""
Parameter calculation utilities for disparity processing.

This module derives the disparity search range from the rig geometry and
the depth range of interest, since disparity = focal_length * baseline / depth.
"""

import math
from typing import Any, Dict, List, Tuple

from utils.logger_config import get_logger

logger = get_logger(__name__)


class DisparityParameterCalculator:
    """Calculates matching parameters from camera setup and depth requirements."""

    def __init__(self):
        self.logger = get_logger(__name__)

    @staticmethod
    def disparity_at_depth(focal_length_px: float, baseline: float, depth: float) -> float:
        """Disparity in pixels of a point at ``depth`` (same unit as baseline)."""
        if depth <= 0:
            raise ValueError(f"depth must be positive, got {depth}")
        return focal_length_px * baseline / depth

    def calculate_parameters(
        self,
        focal_length_px: float,
        baseline: float,
        min_depth: float,
        max_depth: float,
        image_size: Tuple[int, int]
    ) -> Dict[str, Any]:
        """
        Suggest disparity search range and window size.

        Args:
            focal_length_px: Focal length in pixels
            baseline: Baseline, same unit as the depths
            min_depth: Closest depth of interest
            max_depth: Farthest depth of interest
            image_size: (width, height) of the images

        Returns:
            Dict[str, Any]: max_disparity for block matching, num_disparities
                (multiple of 16) for SGBM, odd window_size and the disparity
                range covered
        """
        if focal_length_px <= 0 or baseline <= 0:
            raise ValueError(f"focal length and baseline must be positive, got {focal_length_px}, {baseline}")
        if not 0 < min_depth < max_depth:
            raise ValueError(f"Need 0 < min_depth < max_depth, got {min_depth}, {max_depth}")

        largest = self.disparity_at_depth(focal_length_px, baseline, min_depth)
        smallest = self.disparity_at_depth(focal_length_px, baseline, max_depth)

        max_disparity = int(math.ceil(largest)) + 1
        num_disparities = max(16, int(math.ceil(max_disparity / 16.0)) * 16)

        width, height = image_size
        if width * height > 2000000:  # High resolution
            window_size = 7
        elif width * height > 1000000:  # Medium resolution
            window_size = 5
        else:
            window_size = 3

        parameters = {
            'max_disparity': max_disparity,
            'num_disparities': num_disparities,
            'window_size': window_size,
            'disparity_range': (smallest, largest)
        }
        self.logger.info(f"Disparity parameters for {width}x{height}: "
                         f"max_disparity={max_disparity}, window={window_size}, "
                         f"range=[{smallest:.1f}, {largest:.1f}]px")
        return parameters

    def validate_parameters(self, parameters: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate parameters for reasonableness.

        Returns:
            Tuple[bool, List[str]]: (is_valid, list_of_warnings)
        """
        warnings = []
        is_valid = True

        max_disparity = parameters.get('max_disparity', 0)
        if max_disparity <= 0:
            warnings.append(f"Invalid max_disparity: {max_disparity} (must be positive)")
            is_valid = False
        if max_disparity > 1000:
            warnings.append(f"Very large max_disparity: {max_disparity} (may be slow)")

        window_size = parameters.get('window_size', 0)
        if window_size <= 0 or window_size % 2 == 0:
            warnings.append(f"Invalid window_size: {window_size} (must be positive and odd)")
            is_valid = False
        if window_size > 15:
            warnings.append(f"Large window_size: {window_size} (may reduce accuracy)")

        return is_valid, warnings
