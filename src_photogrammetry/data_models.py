"""
Value types exchanged between the geometric components.

All types are immutable: dataclasses are frozen and the numpy arrays they
hold are private read-only copies, so a calibration can be shared between
concurrent triangulation calls without locking.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Any

import cv2
import numpy as np
import pandas as pd

from utils.stereo_math import StereoMath


def _readonly(array: Any, shape: Optional[Tuple[int, ...]] = None) -> np.ndarray:
    result = np.array(array, dtype=np.float64, copy=True)
    if shape is not None and result.shape != shape:
        raise ValueError(f"Expected array of shape {shape}, got {result.shape}")
    result.setflags(write=False)
    return result


@dataclass(frozen=True)
class Vector2D:
    """Pixel or planar coordinate."""
    x: float
    y: float

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "Vector2D":
        return cls(float(values[0]), float(values[1]))

    def distance_to(self, other: "Vector2D") -> float:
        return float(np.hypot(self.x - other.x, self.y - other.y))


@dataclass(frozen=True)
class Vector3D:
    """World or camera-space coordinate."""
    x: float
    y: float
    z: float

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "Vector3D":
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def distance_to(self, other: "Vector3D") -> float:
        return float(np.linalg.norm(self.to_array() - other.to_array()))

    def scaled(self, factor: float) -> "Vector3D":
        return Vector3D(self.x * factor, self.y * factor, self.z * factor)


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Pinhole intrinsics with Brown-Conrady distortion.

    Focal lengths and principal point are in pixels; k1, k2, k3 are radial
    and p1, p2 tangential coefficients.
    """
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    p1: float = 0.0
    p2: float = 0.0

    # Order of the parameter vector optimised by the calibrator
    PARAMETER_ORDER = ("fx", "fy", "cx", "cy", "k1", "k2", "p1", "p2", "k3")

    def __post_init__(self):
        if not (self.fx > 0 and self.fy > 0):
            raise ValueError(f"Focal lengths must be positive: fx={self.fx}, fy={self.fy}")
        values = [getattr(self, name) for name in self.PARAMETER_ORDER]
        if not np.all(np.isfinite(values)):
            raise ValueError("Intrinsic parameters must be finite")

    @property
    def camera_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0.0, self.cx],
            [0.0, self.fy, self.cy],
            [0.0, 0.0, 1.0]
        ])

    @property
    def distortion_coefficients(self) -> np.ndarray:
        """Coefficients in OpenCV order (k1, k2, p1, p2, k3)."""
        return np.array([self.k1, self.k2, self.p1, self.p2, self.k3])

    @property
    def has_distortion(self) -> bool:
        return bool(np.any(self.distortion_coefficients != 0.0))

    def to_parameter_vector(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in self.PARAMETER_ORDER], dtype=np.float64)

    @classmethod
    def from_parameter_vector(cls, values) -> "CameraIntrinsics":
        return cls(**{name: float(v) for name, v in zip(cls.PARAMETER_ORDER, values)})

    @classmethod
    def from_camera_matrix(cls, K: np.ndarray, distortion=None) -> "CameraIntrinsics":
        StereoMath.validate_camera_matrix(np.asarray(K, dtype=np.float64))
        k1 = k2 = p1 = p2 = k3 = 0.0
        if distortion is not None:
            d = np.asarray(distortion, dtype=np.float64).ravel()
            StereoMath.validate_distortion_coefficients(d)
            k1, k2, p1, p2, k3 = d
        return cls(fx=float(K[0, 0]), fy=float(K[1, 1]), cx=float(K[0, 2]), cy=float(K[1, 2]),
                   k1=float(k1), k2=float(k2), k3=float(k3), p1=float(p1), p2=float(p2))


@dataclass(frozen=True, eq=False)
class CameraExtrinsics:
    """World-to-camera pose: X_cam = R X_world + t."""
    rotation: np.ndarray
    translation: Vector3D

    def __post_init__(self):
        rotation = _readonly(self.rotation, (3, 3))
        StereoMath.validate_rotation_matrix(rotation)
        object.__setattr__(self, "rotation", rotation)
        if not isinstance(self.translation, Vector3D):
            translation = np.asarray(self.translation, dtype=np.float64)
            StereoMath.validate_translation_vector(translation)
            object.__setattr__(self, "translation", Vector3D.from_array(translation.ravel()))

    @classmethod
    def identity(cls) -> "CameraExtrinsics":
        return cls(np.eye(3), Vector3D(0.0, 0.0, 0.0))

    @classmethod
    def from_rotation_vector(cls, rotation_vector, translation) -> "CameraExtrinsics":
        rotation, _ = cv2.Rodrigues(np.asarray(rotation_vector, dtype=np.float64).reshape(3, 1))
        return cls(rotation, Vector3D.from_array(np.asarray(translation, dtype=np.float64).ravel()))

    @property
    def rotation_vector(self) -> np.ndarray:
        rvec, _ = cv2.Rodrigues(np.array(self.rotation))
        return rvec.ravel()

    @property
    def translation_vector(self) -> np.ndarray:
        return self.translation.to_array()

    @property
    def camera_center(self) -> np.ndarray:
        return -self.rotation.T @ self.translation_vector

    def scaled(self, factor: float) -> "CameraExtrinsics":
        """Same pose expressed in a world frame scaled by ``factor``."""
        return CameraExtrinsics(self.rotation, self.translation.scaled(factor))


@dataclass(frozen=True, eq=False)
class CameraParameters:
    """One calibrated view."""
    intrinsics: CameraIntrinsics
    extrinsics: CameraExtrinsics

    @property
    def projection_matrix(self) -> np.ndarray:
        K = self.intrinsics.camera_matrix
        return K @ np.hstack((np.array(self.extrinsics.rotation),
                              self.extrinsics.translation_vector.reshape(3, 1)))


@dataclass(frozen=True, eq=False)
class HomographyMatrix:
    H: np.ndarray
    confidence: float
    inliers: List[Vector2D]
    outliers: List[Vector2D]
    inlier_mask: np.ndarray = None

    def __post_init__(self):
        object.__setattr__(self, "H", _readonly(self.H, (3, 3)))
        if self.inlier_mask is not None:
            mask = np.array(self.inlier_mask, dtype=bool, copy=True)
            mask.setflags(write=False)
            object.__setattr__(self, "inlier_mask", mask)


@dataclass(frozen=True, eq=False)
class FundamentalMatrix:
    F: np.ndarray
    confidence: float
    inlier_mask: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "F", _readonly(self.F, (3, 3)))
        mask = np.array(self.inlier_mask, dtype=bool, copy=True)
        mask.setflags(write=False)
        object.__setattr__(self, "inlier_mask", mask)


@dataclass(frozen=True, eq=False)
class PerspectiveCorrection:
    """Paired forward (image -> rectangle) and inverse planar mapping."""
    original_points: List[Vector2D]
    corrected_points: List[Vector2D]
    transform_matrix: np.ndarray
    inverse_matrix: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "transform_matrix", _readonly(self.transform_matrix, (3, 3)))
        object.__setattr__(self, "inverse_matrix", _readonly(self.inverse_matrix, (3, 3)))


@dataclass(frozen=True, eq=False)
class StereoPair:
    """
    Rectified image pair with its dense maps.

    ``baseline`` is the optical-centre distance in mm; the disparity and
    depth maps have the height and width of the source images.
    """
    left_image: np.ndarray
    right_image: np.ndarray
    baseline: float
    disparity_map: np.ndarray
    depth_map: np.ndarray

    def __post_init__(self):
        height, width = self.left_image.shape[:2]
        for name in ("disparity_map", "depth_map"):
            grid = getattr(self, name)
            if grid.shape != (height, width):
                raise ValueError(f"{name} shape {grid.shape} does not match image size {(height, width)}")
            object.__setattr__(self, name, _readonly(grid))


@dataclass(frozen=True, eq=False)
class CalibrationResult:
    intrinsics: CameraIntrinsics
    extrinsics: List[CameraExtrinsics]
    reprojection_error: float
    per_view_errors: List[float]
    converged: bool
    iterations: int

    @property
    def low_confidence(self) -> bool:
        return not self.converged


@dataclass(frozen=True)
class ReferenceScale:
    """
    The single known real-world length that fixes the metric scale.

    Either ``measured_distance`` (the same length in unscaled units) or
    ``point_indices`` (two triangulated points spanning the length) must be
    given.
    """
    real_world_distance: float
    measured_distance: Optional[float] = None
    point_indices: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        if not self.real_world_distance > 0:
            raise ValueError(f"real_world_distance must be positive, got {self.real_world_distance}")
        if self.measured_distance is None and self.point_indices is None:
            raise ValueError("Either measured_distance or point_indices is required")
        if self.measured_distance is not None and not self.measured_distance > 0:
            raise ValueError(f"measured_distance must be positive, got {self.measured_distance}")
        if self.point_indices is not None:
            if len(self.point_indices) != 2 or self.point_indices[0] == self.point_indices[1]:
                raise ValueError(f"point_indices must name two distinct points, got {self.point_indices}")


@dataclass(frozen=True)
class ObjectDimensions:
    """Axis-aligned extent of a measured point set."""
    width: float
    height: float
    depth: float
    volume: float
    centroid: Vector3D


@dataclass(frozen=True, eq=False)
class PhotogrammetricMeasurement:
    world_coordinates: List[Vector3D]
    image_coordinates: List[Vector2D]
    reprojection_error: float
    scale_factor: float
    confidence: float
    method: str = "multi_view"
    dimensions: Optional[ObjectDimensions] = None
    uncertainty: Optional[Dict[str, float]] = field(default=None)

    def to_dataframe(self) -> pd.DataFrame:
        """Scaled world coordinates as a table, one row per measured point."""
        return pd.DataFrame(
            [[i, p.x, p.y, p.z] for i, p in enumerate(self.world_coordinates)],
            columns=['point', 'x', 'y', 'z']
        )

    def summary(self) -> Dict[str, Any]:
        result = {
            'method': self.method,
            'num_points': len(self.world_coordinates),
            'reprojection_error': self.reprojection_error,
            'scale_factor': self.scale_factor,
            'confidence': self.confidence,
        }
        if self.dimensions is not None:
            result['dimensions'] = {
                'width': self.dimensions.width,
                'height': self.dimensions.height,
                'depth': self.dimensions.depth,
                'volume': self.dimensions.volume,
            }
        if self.uncertainty is not None:
            result['uncertainty'] = dict(self.uncertainty)
        return result
