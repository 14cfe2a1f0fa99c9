"""
Point processing utilities for the photogrammetric core.

This module converts the point containers accepted at the public boundary
(value types, tuples, arrays) into float arrays and provides the isotropic
(Hartley) normalisation used to condition every DLT system.
"""

import numpy as np
from typing import Any, Sequence, Tuple, Union

from utils.logger_config import get_logger

logger = get_logger(__name__)

PointsLike = Union[np.ndarray, Sequence[Any]]


class PointProcessor:
    """Handles point coordinate conversions and conditioning."""

    @staticmethod
    def as_point_array(points: PointsLike, dimension: int, name: str = "points") -> np.ndarray:
        """
        Convert a point collection into an (N, dimension) float64 array.

        Elements may be value types exposing ``to_array()`` or plain
        sequences of coordinates.

        Raises:
            ValueError: If the collection does not hold ``dimension``-D points
        """
        if isinstance(points, np.ndarray):
            array = np.asarray(points, dtype=np.float64)
        else:
            array = np.asarray(
                [p.to_array() if hasattr(p, "to_array") else p for p in points],
                dtype=np.float64
            )

        if array.size == 0:
            return np.zeros((0, dimension), dtype=np.float64)

        array = array.reshape(-1, array.shape[-1]) if array.ndim > 2 else array
        if array.ndim != 2 or array.shape[1] != dimension:
            raise ValueError(f"{name} must be a sequence of {dimension}D points, got shape {array.shape}")
        if not np.all(np.isfinite(array)):
            raise ValueError(f"{name} contains NaN or infinite values")
        return array

    @staticmethod
    def to_homogeneous(points: np.ndarray) -> np.ndarray:
        """Append a column of ones."""
        return np.hstack((points, np.ones((points.shape[0], 1))))

    @staticmethod
    def normalize_points(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Isotropic normalisation of 2D or 3D points.

        Points are translated to their centroid and scaled so the mean
        distance from the origin is sqrt(dimension).

        Args:
            points: (N, d) array with d in {2, 3}

        Returns:
            Tuple containing:
                - normalised points (N, d)
                - similarity transform T ((d+1)x(d+1)) with x_n = T x
        """
        dimension = points.shape[1]
        centroid = points.mean(axis=0)
        centered = points - centroid
        mean_distance = np.mean(np.linalg.norm(centered, axis=1))

        if mean_distance < 1e-12:
            logger.debug("All points coincide; normalisation uses unit scale")
            scale = 1.0
        else:
            scale = np.sqrt(dimension) / mean_distance

        T = np.eye(dimension + 1)
        T[:dimension, :dimension] *= scale
        T[:dimension, dimension] = -scale * centroid

        return centered * scale, T

    @staticmethod
    def is_coplanar(points: np.ndarray, relative_tolerance: float = 1e-9) -> bool:
        """
        Check whether 3D points lie on a common plane.

        Args:
            points: (N, 3) array
            relative_tolerance: Smallest-to-largest singular value ratio below
                which the cloud is treated as planar
        """
        centered = points - points.mean(axis=0)
        singular_values = np.linalg.svd(centered, compute_uv=False)
        if singular_values[0] < 1e-12:
            return True
        return singular_values[-1] < relative_tolerance * singular_values[0]
