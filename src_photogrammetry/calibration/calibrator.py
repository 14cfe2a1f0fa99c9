"""
Camera calibration from known 3D reference points.

The calibrator initializes the intrinsics, estimates one pose per image with
DLT PnP and then refines intrinsics and poses jointly with Levenberg-Marquardt
on the pixel reprojection residuals.
"""

import cv2
import numpy as np
from typing import List, Optional, Sequence, Tuple

from config.config import Config
from utils.logger_config import get_logger
from utils.point_processor import PointProcessor
from utils.stereo_math import StereoMath
from ..data_models import CalibrationResult, CameraExtrinsics, CameraIntrinsics
from ..exceptions import (
    CalibrationDivergence, DegenerateTransform, InsufficientCorrespondences, SingularSystem
)
from ..linear_algebra import solve_linear
from .pose_estimator import decompose_projection_matrix, estimate_pose, estimate_projection_matrix
from .projection import project_with_parameters

logger = get_logger(__name__)

NUM_INTRINSICS = len(CameraIntrinsics.PARAMETER_ORDER)
POSE_SIZE = 6
LAMBDA_FLOOR = 1e-12
LAMBDA_CEILING = 1e12


class CameraCalibrator:
    """Estimates intrinsics and per-image poses from 3D-2D correspondences."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.logger = get_logger(__name__)

        self.max_iterations = self.config.calibration_max_iterations
        self.tolerance = self.config.calibration_tolerance
        self.initial_lambda = self.config.lm_initial_lambda
        self.min_points = self.config.min_points_per_image
        self.seed_from_dlt = self.config.get_bool("seed_intrinsics_from_dlt")

    def calibrate(
        self,
        object_points: Sequence,
        image_points: Sequence,
        image_size: Tuple[int, int],
        strict: bool = False
    ) -> CalibrationResult:
        """
        Calibrate a single camera.

        Args:
            object_points: Per image, the (N, 3) world reference points
            image_points: Per image, the (N, 2) observed pixels
            image_size: (width, height) of the images in pixels
            strict: Raise CalibrationDivergence instead of returning a
                low-confidence result when the optimizer does not converge

        Returns:
            CalibrationResult: Intrinsics, one pose per image and
                reprojection statistics

        Raises:
            InsufficientCorrespondences: No image, or an image with too few points
            ValueError: Mismatched point counts or invalid image size
            CalibrationDivergence: Only with ``strict=True``
        """
        worlds, pixels = self._validate_inputs(object_points, image_points, image_size)
        width, height = image_size

        intrinsics = self._initial_intrinsics(worlds, pixels, width, height)
        poses = [estimate_pose(world, observed, intrinsics) for world, observed in zip(worlds, pixels)]

        parameters = np.concatenate(
            [intrinsics.to_parameter_vector()]
            + [np.concatenate((pose.rotation_vector, pose.translation_vector)) for pose in poses]
        )

        self.logger.info(f"Calibrating from {len(worlds)} images, "
                         f"{sum(len(w) for w in worlds)} points, "
                         f"{parameters.size} parameters")

        parameters, converged, iterations = self._levenberg_marquardt(parameters, worlds, pixels)
        result = self._build_result(parameters, worlds, pixels, converged, iterations)

        if converged:
            self.logger.info(f"Calibration converged after {iterations} iterations: "
                             f"fx={result.intrinsics.fx:.2f}, fy={result.intrinsics.fy:.2f}, "
                             f"cx={result.intrinsics.cx:.2f}, cy={result.intrinsics.cy:.2f}, "
                             f"error={result.reprojection_error:.4f}px")
        else:
            message = (f"Levenberg-Marquardt did not converge within {self.max_iterations} iterations "
                       f"(reprojection error {result.reprojection_error:.4f}px)")
            if strict:
                raise CalibrationDivergence(message, result=result)
            self.logger.warning(message + "; returning low-confidence result")

        return result

    def _validate_inputs(self, object_points, image_points, image_size) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        if len(object_points) != len(image_points):
            raise ValueError(f"Got {len(object_points)} object point sets "
                             f"but {len(image_points)} image point sets")
        if len(object_points) == 0:
            raise InsufficientCorrespondences(1, 0, "calibration images")

        width, height = image_size
        if width <= 0 or height <= 0:
            raise ValueError(f"Image size must be positive, got {image_size}")

        worlds, pixels = [], []
        for index, (world, observed) in enumerate(zip(object_points, image_points)):
            world = PointProcessor.as_point_array(world, 3, f"object_points[{index}]")
            observed = PointProcessor.as_point_array(observed, 2, f"image_points[{index}]")
            if len(world) != len(observed):
                raise ValueError(f"Image {index}: {len(world)} object points vs {len(observed)} image points")
            if len(world) < self.min_points:
                raise InsufficientCorrespondences(self.min_points, len(world), f"points in image {index}")
            worlds.append(world)
            pixels.append(observed)

        return worlds, pixels

    def _initial_intrinsics(self, worlds, pixels, width: int, height: int) -> CameraIntrinsics:
        naive = CameraIntrinsics(fx=float(width), fy=float(width), cx=width / 2.0, cy=height / 2.0)

        if not self.seed_from_dlt:
            return naive
        if any(PointProcessor.is_coplanar(world) for world in worlds):
            self.logger.debug("Planar target in at least one image; using naive intrinsics")
            return naive

        estimates = []
        for world, observed in zip(worlds, pixels):
            K, _, _ = decompose_projection_matrix(estimate_projection_matrix(world, observed))
            estimates.append([K[0, 0], K[1, 1], K[0, 2], K[1, 2]])
        fx, fy, cx, cy = np.median(np.array(estimates), axis=0)

        plausible = (np.all(np.isfinite([fx, fy, cx, cy]))
                     and 0.05 * width < fx < 20.0 * width
                     and 0.05 * width < fy < 20.0 * width
                     and 0.0 <= cx <= width and 0.0 <= cy <= height)
        if not plausible:
            self.logger.warning(f"DLT intrinsics implausible (fx={fx:.1f}, fy={fy:.1f}, "
                                f"cx={cx:.1f}, cy={cy:.1f}); using naive guess")
            return naive

        self.logger.debug(f"Seeded intrinsics from DLT: fx={fx:.2f}, fy={fy:.2f}, cx={cx:.2f}, cy={cy:.2f}")
        return CameraIntrinsics(fx=float(fx), fy=float(fy), cx=float(cx), cy=float(cy))

    def _residuals(self, parameters: np.ndarray, worlds, pixels) -> np.ndarray:
        intrinsic_vector = parameters[:NUM_INTRINSICS]
        blocks = []
        for index, (world, observed) in enumerate(zip(worlds, pixels)):
            start = NUM_INTRINSICS + POSE_SIZE * index
            rotation, _ = cv2.Rodrigues(parameters[start:start + 3].reshape(3, 1))
            projected = project_with_parameters(world, intrinsic_vector, rotation,
                                                parameters[start + 3:start + 6])
            blocks.append((projected - observed).ravel())
        return np.concatenate(blocks)

    def _cost(self, parameters: np.ndarray, worlds, pixels) -> float:
        """Sum of squared residuals; inf where the model is not defined."""
        if parameters[0] <= 0 or parameters[1] <= 0:
            return np.inf
        try:
            residuals = self._residuals(parameters, worlds, pixels)
        except DegenerateTransform:
            return np.inf
        cost = float(residuals @ residuals)
        return cost if np.isfinite(cost) else np.inf

    def _jacobian(self, parameters: np.ndarray, worlds, pixels, residuals: np.ndarray) -> np.ndarray:
        """
        Central-difference Jacobian of the residual vector.

        A column whose perturbation moves a point onto the camera plane falls
        back to the one-sided difference from ``residuals``.

        Raises:
            DegenerateTransform: If both perturbations of a parameter are undefined
        """
        jacobian = np.zeros((residuals.size, parameters.size))
        for j in range(parameters.size):
            step = 1e-6 * max(1.0, abs(parameters[j]))
            forward = parameters.copy()
            backward = parameters.copy()
            forward[j] += step
            backward[j] -= step
            forward_residuals = self._try_residuals(forward, worlds, pixels)
            backward_residuals = self._try_residuals(backward, worlds, pixels)

            if forward_residuals is not None and backward_residuals is not None:
                jacobian[:, j] = (forward_residuals - backward_residuals) / (2.0 * step)
            elif forward_residuals is not None:
                jacobian[:, j] = (forward_residuals - residuals) / step
            elif backward_residuals is not None:
                jacobian[:, j] = (residuals - backward_residuals) / step
            else:
                raise DegenerateTransform(f"Residuals undefined on both sides of parameter {j}")
        return jacobian

    def _try_residuals(self, parameters: np.ndarray, worlds, pixels) -> Optional[np.ndarray]:
        try:
            return self._residuals(parameters, worlds, pixels)
        except DegenerateTransform:
            return None

    def _levenberg_marquardt(self, parameters: np.ndarray, worlds, pixels) -> Tuple[np.ndarray, bool, int]:
        damping = self.initial_lambda
        residuals = self._residuals(parameters, worlds, pixels)
        cost = float(residuals @ residuals)
        identity = np.eye(parameters.size)

        for iteration in range(1, self.max_iterations + 1):
            try:
                J = self._jacobian(parameters, worlds, pixels, residuals)
            except DegenerateTransform as e:
                damping = min(damping * 10.0, LAMBDA_CEILING)
                self.logger.debug(f"Iteration {iteration}: {e}, lambda={damping:.1e}")
                continue
            JtJ = J.T @ J
            gradient = J.T @ residuals

            try:
                delta = solve_linear(JtJ + damping * identity, gradient)
            except SingularSystem:
                damping = min(damping * 10.0, LAMBDA_CEILING)
                self.logger.debug(f"Iteration {iteration}: singular normal equations, lambda={damping:.1e}")
                continue

            candidate = parameters - delta
            candidate_cost = self._cost(candidate, worlds, pixels)

            if candidate_cost < cost:
                parameters = candidate
                residuals = self._residuals(parameters, worlds, pixels)
                cost = candidate_cost
                damping = max(damping * 0.1, LAMBDA_FLOOR)
            else:
                damping = min(damping * 10.0, LAMBDA_CEILING)

            step_norm = float(np.linalg.norm(delta))
            self.logger.debug(f"Iteration {iteration}: cost={cost:.6e}, |delta|={step_norm:.3e}, "
                              f"lambda={damping:.1e}")

            if step_norm < self.tolerance:
                return parameters, True, iteration

        return parameters, False, self.max_iterations

    def _build_result(self, parameters, worlds, pixels, converged: bool, iterations: int) -> CalibrationResult:
        intrinsics = CameraIntrinsics.from_parameter_vector(parameters[:NUM_INTRINSICS])

        extrinsics = []
        per_view_errors = []
        all_errors = []
        for index, (world, observed) in enumerate(zip(worlds, pixels)):
            start = NUM_INTRINSICS + POSE_SIZE * index
            pose = CameraExtrinsics.from_rotation_vector(parameters[start:start + 3],
                                                         parameters[start + 3:start + 6])
            projected = project_with_parameters(world, parameters[:NUM_INTRINSICS],
                                                np.array(pose.rotation), pose.translation_vector)
            errors = StereoMath.calculate_reprojection_errors(projected, observed)
            extrinsics.append(pose)
            per_view_errors.append(StereoMath.summarize_errors(errors)['mean'])
            all_errors.append(errors)

        return CalibrationResult(
            intrinsics=intrinsics,
            extrinsics=extrinsics,
            reprojection_error=StereoMath.summarize_errors(np.concatenate(all_errors))['mean'],
            per_view_errors=per_view_errors,
            converged=converged,
            iterations=iterations
        )


def calibrate_camera(
    object_points: Sequence,
    image_points: Sequence,
    image_size: Tuple[int, int],
    config: Optional[Config] = None,
    strict: bool = False
) -> CalibrationResult:
    """Calibrate with a calibrator built from ``config`` (defaults if omitted)."""
    return CameraCalibrator(config).calibrate(object_points, image_points, image_size, strict=strict)
