"""
Shared synthetic scenes for the test suite.

Cameras look down +Z at a target about 600 units away; all observations are
generated by exact projection so estimators can be checked to high
precision.
"""

import cv2
import numpy as np
import pytest

from config.config import Config
from src_photogrammetry.data_models import CameraExtrinsics, CameraIntrinsics, CameraParameters


def camera_from_center(intrinsics, rotation_vector, center):
    """Camera with the given orientation whose optical centre sits at ``center``."""
    rotation, _ = cv2.Rodrigues(np.asarray(rotation_vector, dtype=np.float64).reshape(3, 1))
    translation = -rotation @ np.asarray(center, dtype=np.float64)
    return CameraParameters(intrinsics, CameraExtrinsics(rotation, translation))


def project_with_opencv(world_points, camera):
    """Reference projection through cv2.projectPoints."""
    image_points, _ = cv2.projectPoints(
        np.asarray(world_points, dtype=np.float64).reshape(-1, 1, 3),
        camera.extrinsics.rotation_vector.reshape(3, 1),
        camera.extrinsics.translation_vector.reshape(3, 1),
        camera.intrinsics.camera_matrix,
        camera.intrinsics.distortion_coefficients
    )
    return image_points.reshape(-1, 2)


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=800.0, fy=780.0, cx=320.0, cy=240.0)


@pytest.fixture
def cube_points():
    """Twelve non-coplanar target points spanning +-100 units."""
    return np.array([
        [-100.0, -100.0, -100.0],
        [100.0, -100.0, -100.0],
        [100.0, 100.0, -100.0],
        [-100.0, 100.0, -100.0],
        [-100.0, -100.0, 100.0],
        [100.0, -100.0, 100.0],
        [100.0, 100.0, 100.0],
        [-100.0, 100.0, 100.0],
        [0.0, 0.0, 0.0],
        [50.0, -30.0, 70.0],
        [-60.0, 40.0, -20.0],
        [20.0, 80.0, -90.0],
    ])


@pytest.fixture
def planar_points():
    """A 4x3 grid on the world plane Z = 0."""
    xs, ys = np.meshgrid([-90.0, -30.0, 30.0, 90.0], [-60.0, 0.0, 60.0])
    return np.column_stack((xs.ravel(), ys.ravel(), np.zeros(xs.size)))


@pytest.fixture
def calibration_poses():
    """Three distinct views of the target as (rotation_vector, translation) pairs."""
    return [
        (np.array([0.1, -0.2, 0.05]), np.array([10.0, -20.0, 600.0])),
        (np.array([-0.15, 0.1, -0.1]), np.array([-30.0, 15.0, 650.0])),
        (np.array([0.2, 0.25, 0.0]), np.array([25.0, 30.0, 700.0])),
    ]


@pytest.fixture
def stereo_intrinsics():
    return CameraIntrinsics(fx=1000.0, fy=1000.0, cx=320.0, cy=240.0)


@pytest.fixture
def stereo_cameras(stereo_intrinsics):
    """Left camera at the origin, right camera 100 units to the right, slightly toed in."""
    left = camera_from_center(stereo_intrinsics, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0])
    right = camera_from_center(stereo_intrinsics, [0.0, -0.05, 0.0], [100.0, 0.0, 0.0])
    return [left, right]


@pytest.fixture
def scene_points():
    """Points in front of the stereo rig."""
    return np.array([
        [0.0, 0.0, 900.0],
        [50.0, 0.0, 900.0],
        [30.0, -20.0, 950.0],
        [-40.0, 35.0, 1000.0],
        [60.0, 45.0, 870.0],
        [-25.0, -50.0, 930.0],
    ])
