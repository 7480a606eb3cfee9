"""
Tests for the scipy least-squares solver.
"""

import numpy as np
import pytest

from monocal.calibration.intrinsic import calibrate_camera
from monocal.calibration.refinement import (
    INTRINSIC_PARAM_COUNT,
    POSE_PARAM_COUNT,
    _get_sparsity_pattern,
    _xy_reprojection_error,
    pack_intrinsics,
    unpack_intrinsics,
)
from monocal.config import SolverConfig


@pytest.fixture
def scipy_config():
    return SolverConfig(method="scipy", max_iterations=200)


class TestParameterPacking:
    def test_pack_unpack(self, sample_camera_matrix, sample_distortion):
        params = pack_intrinsics(sample_camera_matrix, sample_distortion)
        assert params.shape == (INTRINSIC_PARAM_COUNT,)

        matrix, distortion = unpack_intrinsics(params)
        np.testing.assert_array_equal(matrix, sample_camera_matrix)
        np.testing.assert_array_equal(distortion, sample_distortion)

    def test_skew_is_zero(self, sample_distortion):
        matrix, _ = unpack_intrinsics(pack_intrinsics(np.eye(3), sample_distortion))
        assert matrix[0, 1] == 0.0
        np.testing.assert_array_equal(matrix[2], [0.0, 0.0, 1.0])


class TestSparsityPattern:
    def test_shape(self):
        A = _get_sparsity_pattern([54, 54, 20])
        assert A.shape == (2 * 128, INTRINSIC_PARAM_COUNT + 3 * POSE_PARAM_COUNT)

    def test_structure(self):
        A = _get_sparsity_pattern([4, 3]).toarray()

        # Shared intrinsics touch every residual
        assert np.all(A[:, :INTRINSIC_PARAM_COUNT] == 1)

        first = slice(INTRINSIC_PARAM_COUNT, INTRINSIC_PARAM_COUNT + POSE_PARAM_COUNT)
        second = slice(INTRINSIC_PARAM_COUNT + POSE_PARAM_COUNT, None)
        assert np.all(A[:8, first] == 1)
        assert np.all(A[:8, second] == 0)
        assert np.all(A[8:, first] == 0)
        assert np.all(A[8:, second] == 1)


class TestResiduals:
    def test_zero_at_ground_truth(self, synthetic_correspondences, ground_truth_model):
        params = np.hstack([
            pack_intrinsics(ground_truth_model.camera_matrix, ground_truth_model.distortion),
            np.hstack([
                ground_truth_model.rotation_vectors,
                ground_truth_model.translation_vectors,
            ]).ravel(),
        ])

        residuals = _xy_reprojection_error(params, synthetic_correspondences)

        assert residuals.shape == (2 * 12 * 54,)
        assert np.abs(residuals).max() < 1e-8


class TestScipySolver:
    def test_recovers_ground_truth(
        self, synthetic_correspondences, sample_camera_matrix, sample_distortion, scipy_config
    ):
        model = calibrate_camera(synthetic_correspondences, (1280, 720), scipy_config)

        np.testing.assert_allclose(model.camera_matrix, sample_camera_matrix, rtol=1e-3, atol=1e-3)
        np.testing.assert_allclose(model.distortion, sample_distortion, rtol=1e-2, atol=1e-3)
        assert model.rms_error < 0.01

    def test_matches_opencv(self, synthetic_correspondences, scipy_config):
        refined = calibrate_camera(synthetic_correspondences, (1280, 720), scipy_config)
        reference = calibrate_camera(synthetic_correspondences, (1280, 720))

        np.testing.assert_allclose(
            refined.camera_matrix, reference.camera_matrix, rtol=1e-3, atol=1e-3
        )

    def test_result_layout(self, synthetic_correspondences, scipy_config):
        model = calibrate_camera(synthetic_correspondences, (1280, 720), scipy_config)

        assert model.view_count == 12
        assert model.distortion.shape == (5,)
        assert model.source_ids == tuple(c.source_id for c in synthetic_correspondences)
