"""
Photogrammetric measurement orchestration.

Triangulates correspondences from calibrated views, fixes the metric scale
from one known reference length, and scores the result by its reprojection
error. When triangulation is impossible a single-view pinhole estimate can be
returned instead, if enabled.
"""

from itertools import combinations

import numpy as np
from typing import List, Optional, Sequence

from config.config import Config
from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from utils.stereo_math import GeometryValidator, StereoMath
from ..calibration.projection import project_points
from ..data_models import (
    CameraParameters, PhotogrammetricMeasurement, ReferenceScale, Vector2D, Vector3D
)
from ..exceptions import InsufficientCorrespondences, TriangulationFailure
from ..stereo.triangulation import multi_view_triangulate, undistort_observations
from .accuracy import compute_object_dimensions, monocular_estimate, stereo_uncertainty, triangulation_angle

logger = get_logger(__name__)

MIN_TRIANGULATION_ANGLE_DEG = 10.0


class PhotogrammetricMeasurer:
    """Turns multi-view correspondences into scaled 3D measurements."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = get_logger(__name__)

        self.confidence_falloff = self.config.confidence_falloff_px
        self.undistort = self.config.get_bool("undistort_before_triangulation")
        self.enable_fallback = self.config.get_bool("enable_monocular_fallback")
        self.fallback_confidence = self.config.fallback_confidence

    def measure(
        self,
        points_2d: Sequence,
        cameras: Sequence[CameraParameters],
        reference: ReferenceScale
    ) -> PhotogrammetricMeasurement:
        """
        Measure an object observed in several calibrated views.

        Args:
            points_2d: points_2d[view][point] pixel observations
            cameras: Calibration of each view
            reference: The known real-world length fixing the scale

        Returns:
            PhotogrammetricMeasurement: Scaled world points with reprojection
                error, scale factor and confidence

        Raises:
            TriangulationFailure, InsufficientCorrespondences: When the views
                cannot be triangulated and the monocular fallback is disabled
            ValueError: Invalid reference or mismatched inputs
        """
        self._log_camera_setup(cameras)

        try:
            world = multi_view_triangulate(points_2d, cameras, undistort=self.undistort)
        except (TriangulationFailure, InsufficientCorrespondences) as e:
            if (self.enable_fallback and reference.point_indices is not None
                    and len(cameras) >= 1 and len(points_2d) >= 1):
                self.logger.warning(f"Triangulation failed ({e}); using monocular fallback")
                return self._monocular_fallback(points_2d, cameras, reference)
            raise

        unscaled = np.array([p.to_array() for p in world])
        scale_factor = self._scale_factor(unscaled, reference)
        scaled = unscaled * scale_factor

        observations = [PointProcessor.as_point_array(view, 2) for view in points_2d]
        reprojection_error = self._reprojection_error(scaled, observations, cameras, scale_factor)
        confidence = max(0.0, 1.0 - reprojection_error / self.confidence_falloff)

        measurement = PhotogrammetricMeasurement(
            world_coordinates=[Vector3D.from_array(p) for p in scaled],
            image_coordinates=[Vector2D.from_array(p) for p in observations[0]],
            reprojection_error=reprojection_error,
            scale_factor=scale_factor,
            confidence=confidence,
            method="multi_view",
            dimensions=compute_object_dimensions(scaled),
            uncertainty=self._uncertainty(scaled, cameras, scale_factor, reprojection_error)
        )

        self.logger.info(f"Measured {len(scaled)} points from {len(cameras)} views: "
                         f"scale={scale_factor:.6f}, error={reprojection_error:.4f}px, "
                         f"confidence={confidence:.3f}")
        return measurement

    def _log_camera_setup(self, cameras: Sequence[CameraParameters]) -> None:
        if len(cameras) < 2:
            return
        validation = GeometryValidator.validate_camera_setup(
            [c.intrinsics.camera_matrix for c in cameras],
            [c.extrinsics.camera_center for c in cameras]
        )
        for warning in validation['warnings']:
            self.logger.warning(f"Camera setup: {warning}")

    def _scale_factor(self, unscaled: np.ndarray, reference: ReferenceScale) -> float:
        if reference.measured_distance is not None:
            unscaled_distance = reference.measured_distance
        else:
            i, j = reference.point_indices
            if not (0 <= i < len(unscaled) and 0 <= j < len(unscaled)):
                raise ValueError(f"Reference indices {reference.point_indices} out of range for "
                                 f"{len(unscaled)} points")
            unscaled_distance = float(np.linalg.norm(unscaled[i] - unscaled[j]))

        if not unscaled_distance > 0:
            raise ValueError(f"Unscaled reference distance must be positive, got {unscaled_distance}")
        return reference.real_world_distance / unscaled_distance

    def _reprojection_error(
        self,
        scaled: np.ndarray,
        observations: List[np.ndarray],
        cameras: Sequence[CameraParameters],
        scale_factor: float
    ) -> float:
        """Mean pixel error of the scaled points seen by cameras in the scaled frame."""
        errors = []
        for observed, camera in zip(observations, cameras):
            projected = project_points(scaled, camera.intrinsics, camera.extrinsics.scaled(scale_factor))
            errors.append(StereoMath.calculate_reprojection_errors(projected, observed))
        return StereoMath.summarize_errors(np.concatenate(errors))['mean']

    def _uncertainty(self, scaled: np.ndarray, cameras: Sequence[CameraParameters],
                     scale_factor: float, pixel_error: float) -> Optional[dict]:
        centers = [c.extrinsics.camera_center * scale_factor for c in cameras]
        # Widest pair of views; views sharing an optical centre add no parallax
        baseline = max(float(np.linalg.norm(b - a)) for a, b in combinations(centers, 2))
        if baseline <= 0:
            self.logger.warning("All views share one optical centre; uncertainty not reported")
            return None

        reference = cameras[0]
        rotation = np.array(reference.extrinsics.rotation)
        depths = scaled @ rotation[2] + reference.extrinsics.translation.z * scale_factor
        focal = 0.5 * (reference.intrinsics.fx + reference.intrinsics.fy)

        result = stereo_uncertainty(float(np.mean(depths)), baseline, focal, pixel_error)
        angle = float(np.median([triangulation_angle(p, centers) for p in scaled]))
        result['triangulation_angle_deg'] = angle
        result['baseline'] = baseline

        if angle < MIN_TRIANGULATION_ANGLE_DEG:
            self.logger.warning(f"Narrow triangulation angle ({angle:.1f} deg); depth is poorly constrained")
        return result

    def _monocular_fallback(
        self,
        points_2d: Sequence,
        cameras: Sequence[CameraParameters],
        reference: ReferenceScale
    ) -> PhotogrammetricMeasurement:
        camera = cameras[0]
        pixels = PointProcessor.as_point_array(points_2d[0], 2, "points_2d[0]")
        if self.undistort and camera.intrinsics.has_distortion:
            pixels = undistort_observations(pixels, camera.intrinsics)

        i, j = reference.point_indices
        if not (0 <= i < len(pixels) and 0 <= j < len(pixels)):
            raise ValueError(f"Reference indices {reference.point_indices} out of range for {len(pixels)} points")
        pixel_distance = float(np.linalg.norm(pixels[i] - pixels[j]))

        points = monocular_estimate(pixels, camera.intrinsics, pixel_distance, reference.real_world_distance)
        scale_factor = reference.real_world_distance / pixel_distance

        self.logger.info(f"Monocular estimate of {len(points)} points: "
                         f"{scale_factor:.6f} units/px, confidence={self.fallback_confidence}")

        return PhotogrammetricMeasurement(
            world_coordinates=[Vector3D.from_array(p) for p in points],
            image_coordinates=[Vector2D.from_array(p) for p in pixels],
            reprojection_error=float("nan"),
            scale_factor=scale_factor,
            confidence=self.fallback_confidence,
            method="monocular_fallback",
            dimensions=compute_object_dimensions(points)
        )


def measure_object(
    points_2d: Sequence,
    cameras: Sequence[CameraParameters],
    reference: ReferenceScale,
    config: Optional[Config] = None
) -> PhotogrammetricMeasurement:
    """Measure with a measurer built from ``config`` (defaults if omitted)."""
    return PhotogrammetricMeasurer(config).measure(points_2d, cameras, reference)
