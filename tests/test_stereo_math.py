"""
Tests for the shared geometry utilities.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from src_photogrammetry.data_models import Vector2D
from utils.point_processor import PointProcessor
from utils.stereo_math import GeometryValidator, StereoMath


class TestStereoMath:
    """Tests for matrix validation and error statistics."""

    def test_valid_camera_matrix(self):
        K = np.array([[800.0, 0.0, 320.0], [0.0, 780.0, 240.0], [0.0, 0.0, 1.0]])
        assert StereoMath.validate_camera_matrix(K)

    def test_negative_focal_length(self):
        K = np.array([[-800.0, 0.0, 320.0], [0.0, 780.0, 240.0], [0.0, 0.0, 1.0]])
        with pytest.raises(ValueError):
            StereoMath.validate_camera_matrix(K)

    def test_reflection_is_not_rotation(self):
        with pytest.raises(ValueError):
            StereoMath.validate_rotation_matrix(np.diag([1.0, 1.0, -1.0]))

    def test_singular_projection_matrix(self):
        P = np.zeros((3, 4))
        P[0, 0] = 1.0
        with pytest.raises(ValueError):
            StereoMath.validate_projection_matrix(P)

    def test_baseline_from_projection_matrices(self):
        P2 = np.array([[1000.0, 0.0, 320.0, -100000.0], [0.0, 1000.0, 240.0, 0.0], [0.0, 0.0, 1.0, 0.0]])
        assert StereoMath.calculate_baseline_from_projection_matrices(np.eye(3, 4), P2) == pytest.approx(100.0)

    def test_error_summary(self):
        errors = StereoMath.calculate_reprojection_errors(np.array([[0.0, 0.0], [3.0, 4.0]]), np.zeros((2, 2)))
        assert_allclose(errors, [0.0, 5.0])
        summary = StereoMath.summarize_errors(errors)
        assert summary['mean'] == pytest.approx(2.5)
        assert summary['max'] == pytest.approx(5.0)
        assert summary['rms'] == pytest.approx(np.sqrt(12.5))

    def test_empty_error_summary(self):
        assert StereoMath.summarize_errors(np.array([]))['mean'] == 0.0


class TestGeometryValidator:
    """Tests for multi-camera setup checks."""

    def test_shared_centre_warns(self):
        K = np.array([[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]])
        result = GeometryValidator.validate_camera_setup([K, K], [np.zeros(3), np.zeros(3)])
        assert result['valid']
        assert any("optical centre" in w for w in result['warnings'])

    def test_invalid_matrix_reported(self):
        K = np.array([[800.0, 0.0, 320.0], [0.0, 800.0, 240.0], [0.0, 0.0, 2.0]])
        result = GeometryValidator.validate_camera_setup([K], [np.zeros(3)])
        assert not result['valid']
        assert result['errors']

    def test_principal_point_outside_image(self):
        K = np.array([[800.0, 0.0, 900.0], [0.0, 800.0, 240.0], [0.0, 0.0, 1.0]])
        result = GeometryValidator.validate_camera_setup([K], [np.zeros(3)], image_size=(640, 480))
        assert any("Principal point" in w for w in result['warnings'])


class TestPointProcessor:
    """Tests for point conversion and Hartley normalisation."""

    def test_accepts_value_types(self):
        array = PointProcessor.as_point_array([Vector2D(1.0, 2.0), Vector2D(3.0, 4.0)], 2)
        assert_allclose(array, [[1.0, 2.0], [3.0, 4.0]])

    def test_rejects_wrong_dimension(self):
        with pytest.raises(ValueError):
            PointProcessor.as_point_array(np.zeros((4, 3)), 2)

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            PointProcessor.as_point_array(np.array([[1.0, np.nan]]), 2)

    def test_normalisation_statistics(self):
        points = np.array([[10.0, 20.0], [30.0, 20.0], [30.0, 60.0], [10.0, 60.0]])
        normalized, T = PointProcessor.normalize_points(points)

        assert_allclose(normalized.mean(axis=0), 0.0, atol=1e-12)
        assert np.mean(np.linalg.norm(normalized, axis=1)) == pytest.approx(np.sqrt(2.0))
        assert_allclose((PointProcessor.to_homogeneous(points) @ T.T)[:, :2], normalized, atol=1e-12)

    def test_coplanarity(self, planar_points, cube_points):
        assert PointProcessor.is_coplanar(planar_points)
        assert not PointProcessor.is_coplanar(cube_points)
