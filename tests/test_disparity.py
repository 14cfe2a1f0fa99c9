"""
Tests for dense disparity and depth.

These tests verify the correctness of:
    - Disparity to depth conversion
    - Exhaustive block matching on shifted textures
    - The SGBM and downscaled alternatives behind compute_disparity_map
    - Q-matrix reprojection and disparity parameter suggestions
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from config.config import Config
from src_photogrammetry.stereo import (
    BlockMatchingEngine,
    DisparityParameterCalculator,
    MatrixCalculator,
    SGBMEngine,
    StereoProcessor,
    compute_disparity_map,
    disparity_to_depth,
    disparity_to_point_cloud,
)


def _texture(height, width, seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width)).astype(np.uint8)


@pytest.fixture
def shifted_pair():
    """Left and right views of a random texture 5 pixels apart."""
    texture = _texture(40, 90)
    return texture[:, 0:80].copy(), texture[:, 5:85].copy()


class TestDisparityToDepth:
    """Tests for depth = B f / d."""

    def test_known_depth(self):
        depth = disparity_to_depth(np.array([[50.0]]), baseline=100.0, focal_length_px=1000.0)
        assert depth[0, 0] == pytest.approx(2000.0)

    def test_proportional_to_baseline(self):
        disparity = np.array([[10.0, 20.0], [40.0, 80.0]])
        near = disparity_to_depth(disparity, 60.0, 800.0)
        far = disparity_to_depth(disparity, 120.0, 800.0)
        assert_allclose(far, 2.0 * near)

    def test_non_positive_disparity_is_invalid(self):
        depth = disparity_to_depth(np.array([0.0, -3.0, 4.0]), 100.0, 1000.0)
        assert_allclose(depth, [0.0, 0.0, 25000.0])

    def test_rejects_non_positive_baseline(self):
        with pytest.raises(ValueError):
            disparity_to_depth(np.ones((2, 2)), 0.0, 1000.0)


class TestBlockMatching:
    """Tests for the exhaustive SSD matcher."""

    def test_recovers_uniform_shift(self, shifted_pair):
        left, right = shifted_pair
        disparity = BlockMatchingEngine(window_size=5, max_disparity=16).compute_disparity(left, right)

        assert disparity.shape == left.shape
        assert np.all(disparity[2:38, 7:78] == 5.0)

    def test_border_is_zero(self, shifted_pair):
        left, right = shifted_pair
        disparity = BlockMatchingEngine(window_size=5, max_disparity=16).compute_disparity(left, right)

        assert np.all(disparity[:2] == 0.0)
        assert np.all(disparity[-2:] == 0.0)
        assert np.all(disparity[:, :2] == 0.0)
        assert np.all(disparity[:, -2:] == 0.0)

    def test_identical_images_have_zero_disparity(self):
        image = _texture(30, 40)
        disparity = BlockMatchingEngine(window_size=5, max_disparity=8).compute_disparity(image, image)
        assert np.all(disparity == 0.0)

    def test_colour_images(self, shifted_pair):
        left, right = shifted_pair
        gray = BlockMatchingEngine(window_size=5, max_disparity=16).compute_disparity(left, right)
        colour = BlockMatchingEngine(window_size=5, max_disparity=16).compute_disparity(
            np.dstack([left] * 3), np.dstack([right] * 3)
        )
        assert_allclose(colour, gray)

    def test_even_window_rejected(self):
        with pytest.raises(ValueError):
            BlockMatchingEngine(window_size=4)

    def test_mismatched_shapes_rejected(self, shifted_pair):
        left, right = shifted_pair
        with pytest.raises(ValueError):
            BlockMatchingEngine(window_size=5, max_disparity=16).compute_disparity(left, right[:, :70])

    def test_image_smaller_than_window(self):
        image = _texture(4, 4)
        disparity = BlockMatchingEngine(window_size=5, max_disparity=4).compute_disparity(image, image)
        assert disparity.shape == (4, 4)
        assert np.all(disparity == 0.0)


class TestComputeDisparityMap:
    """Tests for the strategy-selecting entry point."""

    def test_default_method_is_block_matching(self, shifted_pair):
        left, right = shifted_pair
        disparity = compute_disparity_map(left, right, window_size=5, max_disparity=16)
        assert np.all(disparity[2:38, 7:78] == 5.0)

    def test_downscale_keeps_full_resolution(self):
        texture = _texture(40, 96, seed=4)
        left, right = texture[:, 0:88].copy(), texture[:, 8:96].copy()

        disparity = compute_disparity_map(left, right, window_size=5, max_disparity=16, downscale=0.5)

        assert disparity.shape == left.shape
        assert np.median(disparity[8:32, 20:80]) == pytest.approx(8.0)

    def test_sgbm(self):
        texture = _texture(64, 136, seed=2)
        left, right = texture[:, 0:128].copy(), texture[:, 8:136].copy()

        disparity = compute_disparity_map(left, right, window_size=5, max_disparity=16, method="sgbm")

        interior = disparity[10:54, 30:120]
        valid = interior[interior > 0]
        assert disparity.shape == left.shape
        assert valid.size > 0.5 * interior.size
        assert np.median(valid) == pytest.approx(8.0, abs=0.5)

    def test_unknown_method(self, shifted_pair):
        with pytest.raises(ValueError):
            compute_disparity_map(*shifted_pair, method="graph_cut")


class TestSGBMEngine:
    """Tests for the OpenCV SGBM wrapper."""

    def test_rounds_disparities_to_sixteen(self):
        engine = SGBMEngine(window_size=5, max_disparity=20)
        info = engine.get_configuration_info()
        assert info['num_disparities'] == 32
        assert info['sgbm_mode'] == 'SGBM_3WAY'
        assert not info['matcher_created']

        engine.create_stereo_matcher()
        assert engine.get_configuration_info()['matcher_created']


class TestStereoProcessor:
    """Tests for configured pair processing."""

    def test_process_pair(self, shifted_pair):
        left, right = shifted_pair
        processor = StereoProcessor(Config(overrides={"window_size": 5, "max_disparity": 16}))

        pair = processor.process_pair(left, right, baseline=100.0, focal_length_px=1000.0)

        assert pair.baseline == 100.0
        assert pair.disparity_map.shape == left.shape
        assert_allclose(pair.depth_map[2:38, 7:78], 20000.0)
        assert np.all(pair.depth_map[:2] == 0.0)


class TestReprojection:
    """Tests for the Q matrix of a rectified rig."""

    def test_q_matrix_entries(self):
        calculator = MatrixCalculator()
        P1, P2 = calculator.rectified_projection_matrices(1000.0, 320.0, 240.0, 100.0)
        Q = calculator.calculate_q_matrix_from_projection_matrices(P1, P2)

        assert Q[2, 3] == pytest.approx(1000.0)
        assert Q[3, 2] == pytest.approx(0.01)
        assert Q[3, 3] == pytest.approx(0.0)
        assert_allclose(Q[:2, 3], [-320.0, -240.0])

    def test_point_cloud_depth(self):
        calculator = MatrixCalculator()
        Q = calculator.calculate_q_matrix_from_projection_matrices(
            *calculator.rectified_projection_matrices(1000.0, 320.0, 240.0, 100.0)
        )
        disparity = np.zeros((480, 640))
        disparity[240, 320] = 50.0
        disparity[100, 420] = 50.0

        points, valid = disparity_to_point_cloud(disparity, Q)

        assert valid.sum() == 2
        assert_allclose(points[240, 320], [0.0, 0.0, 2000.0], atol=1e-3)
        assert_allclose(points[100, 420], [200.0, -280.0, 2000.0], rtol=1e-5)
        assert np.all(points[~valid] == 0.0)

    def test_zero_baseline_rejected(self):
        calculator = MatrixCalculator()
        P1, _ = calculator.rectified_projection_matrices(1000.0, 320.0, 240.0, 100.0)
        with pytest.raises(ValueError):
            calculator.calculate_q_matrix_from_projection_matrices(P1, P1)


class TestDisparityParameterCalculator:
    """Tests for search range suggestions."""

    def test_parameters_from_depth_range(self):
        parameters = DisparityParameterCalculator().calculate_parameters(
            focal_length_px=1000.0, baseline=100.0, min_depth=1000.0, max_depth=5000.0,
            image_size=(640, 480)
        )
        assert parameters['max_disparity'] == 101
        assert parameters['num_disparities'] == 112
        assert parameters['window_size'] == 3
        assert_allclose(parameters['disparity_range'], (20.0, 100.0))

    def test_high_resolution_window(self):
        parameters = DisparityParameterCalculator().calculate_parameters(
            1000.0, 100.0, 1000.0, 5000.0, image_size=(2000, 1500)
        )
        assert parameters['window_size'] == 7

    def test_validation(self):
        calculator = DisparityParameterCalculator()
        is_valid, warnings = calculator.validate_parameters({'max_disparity': 64, 'window_size': 4})
        assert not is_valid
        assert any("window_size" in w for w in warnings)

        is_valid, warnings = calculator.validate_parameters({'max_disparity': 64, 'window_size': 5})
        assert is_valid
        assert warnings == []

    def test_inverted_depth_range(self):
        with pytest.raises(ValueError):
            DisparityParameterCalculator().calculate_parameters(1000.0, 100.0, 5000.0, 1000.0, (640, 480))
