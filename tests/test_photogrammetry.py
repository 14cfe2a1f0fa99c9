"""
Tests for the photogrammetric measurement orchestrator.

These tests verify the correctness of:
    - Metric scale recovery from a single reference length
    - Reprojection error and the confidence derived from it
    - Object dimensions and uncertainty reporting
    - The monocular fallback when triangulation is impossible
"""

import math
from pathlib import Path

import numpy as np
import pytest
from numpy.testing import assert_allclose

from config.config import Config
from main import parse_request, process_measurement
from src_photogrammetry import PhotogrammetricMeasurer, ReferenceScale, measure_object
from src_photogrammetry.calibration import project_points
from src_photogrammetry.exceptions import InsufficientCorrespondences, TriangulationFailure
from src_photogrammetry.measurement import (
    compute_object_dimensions, monocular_estimate, stereo_uncertainty, triangulation_angle
)

from conftest import camera_from_center

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def unit_cameras(stereo_intrinsics):
    """The stereo rig expressed in a frame 100 times smaller than millimetres."""
    return [
        camera_from_center(stereo_intrinsics, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]),
        camera_from_center(stereo_intrinsics, [0.0, -0.05, 0.0], [1.0, 0.0, 0.0]),
    ]


@pytest.fixture
def observations(stereo_cameras, scene_points):
    return [project_points(scene_points, c.intrinsics, c.extrinsics) for c in stereo_cameras]


@pytest.fixture
def reference():
    # scene_points[0] and scene_points[1] are 50 mm apart
    return ReferenceScale(real_world_distance=50.0, point_indices=(0, 1))


class TestScaleRecovery:
    """Tests for metric scaling."""

    def test_scale_from_reference_points(self, observations, unit_cameras, reference, scene_points):
        measurement = measure_object(observations, unit_cameras, reference)

        assert measurement.method == "multi_view"
        assert measurement.scale_factor == pytest.approx(100.0, rel=1e-9)
        assert_allclose([p.to_array() for p in measurement.world_coordinates], scene_points, atol=1e-6)

    def test_scale_from_measured_distance(self, observations, unit_cameras, scene_points):
        reference = ReferenceScale(real_world_distance=50.0, measured_distance=0.5)
        measurement = measure_object(observations, unit_cameras, reference)

        assert measurement.scale_factor == pytest.approx(100.0)
        assert_allclose([p.to_array() for p in measurement.world_coordinates], scene_points, atol=1e-6)

    def test_reprojection_error_is_scale_independent(self, observations, unit_cameras, reference):
        measurement = measure_object(observations, unit_cameras, reference)

        assert measurement.reprojection_error < 1e-6
        assert measurement.confidence == pytest.approx(1.0)

    def test_reference_index_out_of_range(self, observations, unit_cameras):
        with pytest.raises(ValueError):
            measure_object(observations, unit_cameras,
                           ReferenceScale(real_world_distance=50.0, point_indices=(0, 10)))

    def test_image_coordinates_are_first_view(self, observations, unit_cameras, reference):
        measurement = measure_object(observations, unit_cameras, reference)
        assert_allclose([p.to_array() for p in measurement.image_coordinates], observations[0])


class TestConfidence:
    """Tests for confidence = max(0, 1 - error / falloff)."""

    def test_noisy_observations_lower_confidence(self, observations, stereo_cameras, reference):
        noisy = [observations[0].copy(), observations[1].copy()]
        noisy[0][:, 1] += 1.5

        measurement = measure_object(noisy, stereo_cameras, reference)

        assert measurement.reprojection_error > 0.1
        assert measurement.confidence == pytest.approx(1.0 - measurement.reprojection_error / 10.0)

    def test_confidence_clamped_at_zero(self, observations, stereo_cameras, reference):
        noisy = [observations[0].copy(), observations[1].copy()]
        noisy[0][:, 1] += 1.5
        config = Config(overrides={"confidence_falloff_px": 0.01})

        measurement = measure_object(noisy, stereo_cameras, reference, config)

        assert measurement.confidence == 0.0


class TestReporting:
    """Tests for dimensions, uncertainty and tabular output."""

    def test_dimensions(self, observations, stereo_cameras, reference):
        measurement = measure_object(observations, stereo_cameras, reference)
        dimensions = measurement.dimensions

        assert dimensions.width == pytest.approx(100.0, abs=1e-6)
        assert dimensions.height == pytest.approx(95.0, abs=1e-6)
        assert dimensions.depth == pytest.approx(130.0, abs=1e-6)
        assert dimensions.volume == pytest.approx(math.pi / 6.0 * 100.0 * 95.0 * 130.0, rel=1e-6)

    def test_uncertainty_keys(self, observations, unit_cameras, reference):
        measurement = measure_object(observations, unit_cameras, reference)

        assert set(measurement.uncertainty) == {'depth', 'lateral', 'total', 'triangulation_angle_deg', 'baseline'}
        assert measurement.uncertainty['baseline'] == pytest.approx(100.0)
        assert 0.0 < measurement.uncertainty['triangulation_angle_deg'] < 20.0

    def test_dataframe(self, observations, stereo_cameras, reference, scene_points):
        frame = measure_object(observations, stereo_cameras, reference).to_dataframe()

        assert list(frame.columns) == ['point', 'x', 'y', 'z']
        assert len(frame) == len(scene_points)
        assert_allclose(frame[['x', 'y', 'z']].to_numpy(), scene_points, atol=1e-6)

    def test_summary(self, observations, stereo_cameras, reference):
        summary = measure_object(observations, stereo_cameras, reference).summary()

        assert summary['method'] == 'multi_view'
        assert summary['num_points'] == 6
        assert 'dimensions' in summary
        assert 'uncertainty' in summary

    def test_baseline_uses_widest_pair_of_views(self, stereo_intrinsics, stereo_cameras, scene_points, reference):
        # The second view shares the first view's optical centre
        cameras = [
            stereo_cameras[0],
            camera_from_center(stereo_intrinsics, [0.0, 0.03, 0.0], [0.0, 0.0, 0.0]),
            stereo_cameras[1],
        ]
        observations = [project_points(scene_points, c.intrinsics, c.extrinsics) for c in cameras]

        measurement = measure_object(observations, cameras, reference)

        assert_allclose([p.to_array() for p in measurement.world_coordinates], scene_points, atol=1e-6)
        assert measurement.uncertainty['baseline'] == pytest.approx(100.0)
        assert measurement.uncertainty['depth'] > 0.0

    def test_uncertainty_skipped_without_parallax(self, stereo_intrinsics, scene_points):
        cameras = [
            camera_from_center(stereo_intrinsics, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]),
            camera_from_center(stereo_intrinsics, [0.0, 0.03, 0.0], [0.0, 0.0, 0.0]),
        ]

        assert PhotogrammetricMeasurer()._uncertainty(scene_points, cameras, 1.0, 0.5) is None


class TestFailureHandling:
    """Tests for degenerate views and the monocular fallback."""

    @pytest.fixture
    def coincident_cameras(self, stereo_intrinsics):
        return [
            camera_from_center(stereo_intrinsics, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]),
            camera_from_center(stereo_intrinsics, [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]),
        ]

    def test_identical_views_raise(self, observations, coincident_cameras, reference):
        views = [observations[0], observations[0]]
        with pytest.raises(TriangulationFailure):
            measure_object(views, coincident_cameras, reference)

    def test_single_view_raises_without_fallback(self, observations, stereo_cameras, reference):
        with pytest.raises(InsufficientCorrespondences):
            measure_object(observations[:1], stereo_cameras[:1], reference)

    def test_monocular_fallback(self, observations, coincident_cameras, reference):
        config = Config(overrides={"enable_monocular_fallback": "True"})
        views = [observations[0], observations[0]]

        measurement = measure_object(views, coincident_cameras, reference, config)

        assert measurement.method == "monocular_fallback"
        assert measurement.confidence == pytest.approx(0.3)
        assert math.isnan(measurement.reprojection_error)
        # Points at the reference depth are placed exactly
        assert_allclose(measurement.world_coordinates[0].to_array(), [0.0, 0.0, 900.0], atol=1e-6)
        assert_allclose(measurement.world_coordinates[1].to_array(), [50.0, 0.0, 900.0], atol=1e-6)

    def test_single_view_fallback(self, observations, stereo_cameras, reference):
        config = Config(overrides={"enable_monocular_fallback": "True", "fallback_confidence": 0.2})

        measurement = PhotogrammetricMeasurer(config).measure(observations[:1], stereo_cameras[:1], reference)

        assert measurement.method == "monocular_fallback"
        assert measurement.confidence == pytest.approx(0.2)

    def test_fallback_needs_reference_points(self, observations, stereo_cameras):
        config = Config(overrides={"enable_monocular_fallback": "True"})
        reference = ReferenceScale(real_world_distance=50.0, measured_distance=0.5)
        with pytest.raises(InsufficientCorrespondences):
            measure_object(observations[:1], stereo_cameras[:1], reference, config)


class TestAccuracyHelpers:
    """Tests for the standalone accuracy functions."""

    def test_object_dimensions_of_box(self):
        points = np.array([[0.0, 0.0, 0.0], [2.0, 3.0, 4.0]])
        dimensions = compute_object_dimensions(points)
        assert (dimensions.width, dimensions.height, dimensions.depth) == (2.0, 3.0, 4.0)
        assert dimensions.volume == pytest.approx(math.pi / 6.0 * 24.0)
        assert dimensions.centroid.to_array().tolist() == [1.0, 1.5, 2.0]

    def test_empty_points_rejected(self):
        with pytest.raises(ValueError):
            compute_object_dimensions(np.zeros((0, 3)))

    def test_stereo_uncertainty(self):
        result = stereo_uncertainty(depth=2000.0, baseline=100.0, focal_length_px=1000.0, pixel_error=0.5)
        assert result['depth'] == pytest.approx(20.0)
        assert result['lateral'] == pytest.approx(1.0)
        assert result['total'] == pytest.approx(math.hypot(20.0, 1.0))

    def test_triangulation_angle(self):
        angle = triangulation_angle(np.array([0.0, 0.0, 100.0]),
                                    [np.array([-100.0, 0.0, 0.0]), np.array([100.0, 0.0, 0.0])])
        assert angle == pytest.approx(90.0)

    def test_monocular_estimate(self, stereo_intrinsics):
        pixels = np.array([[320.0, 240.0], [420.0, 240.0]])
        points = monocular_estimate(pixels, stereo_intrinsics, pixel_reference=100.0, real_reference=50.0)
        assert_allclose(points, [[0.0, 0.0, 500.0], [50.0, 0.0, 500.0]])


class TestRequestFile:
    """Tests for the JSON request entry point."""

    def test_example_request(self):
        config = Config(str(PROJECT_ROOT / "config" / "config_measurement.json"))
        measurement = process_measurement(config, str(PROJECT_ROOT / "config" / "measurement_request_example.json"))

        assert measurement.scale_factor == pytest.approx(1.0, rel=1e-6)
        assert_allclose(measurement.world_coordinates[0].to_array(), [0.0, 0.0, 1000.0], atol=1e-3)
        assert measurement.reprojection_error < 1e-3

    def test_parse_request_rotation_forms(self):
        request = {
            "cameras": [
                {"intrinsics": {"fx": 800.0, "fy": 800.0, "cx": 0.0, "cy": 0.0},
                 "extrinsics": {"rotation_vector": [0.0, 0.1, 0.0], "translation": [1.0, 2.0, 3.0]}},
                {"intrinsics": {"fx": 800.0, "fy": 800.0, "cx": 0.0, "cy": 0.0}},
            ],
            "points_2d": [[[0.0, 0.0]], [[1.0, 1.0]]],
            "reference": {"real_world_distance": 10.0, "measured_distance": 2.0},
        }
        points_2d, cameras, reference = parse_request(request)

        assert_allclose(cameras[0].extrinsics.rotation_vector, [0.0, 0.1, 0.0], atol=1e-12)
        assert_allclose(cameras[1].extrinsics.rotation, np.eye(3))
        assert reference.measured_distance == 2.0
        assert reference.point_indices is None
        assert len(points_2d) == 2
