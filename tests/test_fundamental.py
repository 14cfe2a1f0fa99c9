"""
Tests for fundamental matrix estimation.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from config.config import Config
from src_photogrammetry.calibration import project_points
from src_photogrammetry.exceptions import InsufficientCorrespondences
from src_photogrammetry.projective import (
    ProjectiveEstimator, compute_fundamental_matrix, epipolar_distance
)


@pytest.fixture
def correspondences(stereo_cameras):
    rng = np.random.default_rng(21)
    world = np.column_stack((
        rng.uniform(-200, 200, 30),
        rng.uniform(-150, 150, 30),
        rng.uniform(800, 1200, 30)
    ))
    left, right = stereo_cameras
    return (project_points(world, left.intrinsics, left.extrinsics),
            project_points(world, right.intrinsics, right.extrinsics))


class TestFundamentalMatrix:
    """Tests for 8-point RANSAC."""

    def test_exact_correspondences_satisfy_epipolar_constraint(self, correspondences):
        pts1, pts2 = correspondences
        result = compute_fundamental_matrix(pts1, pts2, seed=0)

        assert result.confidence == pytest.approx(1.0)
        assert np.linalg.norm(result.F) == pytest.approx(1.0)
        assert np.all(epipolar_distance(result.F, pts1, pts2) < 1e-6)

    def test_rank_two(self, correspondences):
        result = compute_fundamental_matrix(*correspondences, seed=0)
        singular_values = np.linalg.svd(result.F, compute_uv=False)
        assert singular_values[2] < 1e-10 * singular_values[0]

    def test_rejects_off_epipolar_matches(self, correspondences):
        pts1, pts2 = correspondences
        corrupted = pts2.copy()
        corrupted[:5, 1] += 40.0

        result = compute_fundamental_matrix(pts1, corrupted, threshold=1.0, max_iterations=200, seed=3)

        assert not result.inlier_mask[:5].any()
        assert result.inlier_mask[5:].all()
        assert result.confidence == pytest.approx(25 / 30)

    def test_seven_points_insufficient(self, correspondences):
        pts1, pts2 = correspondences
        with pytest.raises(InsufficientCorrespondences):
            compute_fundamental_matrix(pts1[:7], pts2[:7])

    def test_matches_reference_fundamental_matrix(self, correspondences, stereo_cameras):
        pts1, pts2 = correspondences
        result = compute_fundamental_matrix(pts1, pts2, seed=0)

        # F = K^-T [t]x R K^-1 from the relative pose
        left, right = stereo_cameras
        R = right.extrinsics.rotation @ left.extrinsics.rotation.T
        t = right.extrinsics.translation_vector - R @ left.extrinsics.translation_vector
        tx = np.array([[0.0, -t[2], t[1]], [t[2], 0.0, -t[0]], [-t[1], t[0], 0.0]])
        K_inv = np.linalg.inv(left.intrinsics.camera_matrix)
        reference = K_inv.T @ tx @ R @ K_inv
        reference /= np.linalg.norm(reference)

        sign = np.sign(np.sum(reference * result.F))
        assert_allclose(sign * result.F, reference, atol=1e-6)


class TestEstimatorFundamental:
    """Tests for configured fundamental matrix estimation."""

    def test_uses_fundamental_threshold(self, correspondences):
        pts1, pts2 = correspondences
        corrupted = pts2.copy()
        corrupted[0, 1] += 3.0

        strict = ProjectiveEstimator(Config(overrides={
            "fundamental_threshold": 0.5, "random_seed": 1, "ransac_max_iterations": 100
        }))
        loose = ProjectiveEstimator(Config(overrides={"fundamental_threshold": 50.0, "random_seed": 1}))

        assert not strict.estimate_fundamental_matrix(pts1, corrupted).inlier_mask[0]
        assert loose.estimate_fundamental_matrix(pts1, corrupted).inlier_mask[0]
