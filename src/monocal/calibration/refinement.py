"""
Joint refinement of intrinsics, distortion and per-view poses.

A scipy least_squares alternative to cv2.calibrateCamera, with the
Jacobian sparsity written out explicitly.
"""

from __future__ import annotations

import logging
from typing import Sequence

import cv2
import numpy as np
from scipy.optimize import least_squares
from scipy.sparse import lil_matrix

from ..config import SolverConfig
from ..types import CameraModel, Correspondence
from .intrinsic import DISTORTION_COUNT, initial_camera_matrix

logger = logging.getLogger(__name__)

# fx, fy, cx, cy + distortion
INTRINSIC_PARAM_COUNT = 4 + DISTORTION_COUNT
# rodrigues (3) + translation (3)
POSE_PARAM_COUNT = 6


def pack_intrinsics(matrix: np.ndarray, distortion: np.ndarray) -> np.ndarray:
    return np.hstack([
        [matrix[0, 0], matrix[1, 1], matrix[0, 2], matrix[1, 2]],
        np.asarray(distortion, dtype=np.float64).ravel()[:DISTORTION_COUNT],
    ])


def unpack_intrinsics(params: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    fx, fy, cx, cy = params[:4]
    matrix = np.array([
        [fx, 0.0, cx],
        [0.0, fy, cy],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)
    return matrix, np.array(params[4:INTRINSIC_PARAM_COUNT], dtype=np.float64)


def _initial_poses(
    correspondences: Sequence[Correspondence],
    matrix: np.ndarray,
) -> np.ndarray:
    """
    Per-view poses from PnP against the initial, distortion-free camera.
    """
    poses = np.zeros((len(correspondences), POSE_PARAM_COUNT), dtype=np.float64)
    no_distortion = np.zeros(DISTORTION_COUNT, dtype=np.float64)

    for i, c in enumerate(correspondences):
        success, rvec, tvec = cv2.solvePnP(
            c.object_points.astype(np.float64),
            c.image_points.astype(np.float64),
            matrix,
            no_distortion,
        )
        if not success:
            raise ValueError(f"Could not estimate an initial pose for {c.source_id}")
        poses[i, 0:3] = rvec.ravel()
        poses[i, 3:6] = tvec.ravel()

    return poses


def _get_sparsity_pattern(point_counts: Sequence[int]) -> lil_matrix:
    """
    Build sparse Jacobian pattern for least_squares.

    Every residual depends on the shared intrinsics; only the residuals of a
    view depend on that view's pose.
    """
    m = 2 * int(sum(point_counts))  # 2 residuals per observation (x, y)
    n = INTRINSIC_PARAM_COUNT + POSE_PARAM_COUNT * len(point_counts)

    A = lil_matrix((m, n), dtype=int)
    A[:, :INTRINSIC_PARAM_COUNT] = 1

    row = 0
    for view, count in enumerate(point_counts):
        col = INTRINSIC_PARAM_COUNT + view * POSE_PARAM_COUNT
        A[row : row + 2 * count, col : col + POSE_PARAM_COUNT] = 1
        row += 2 * count

    return A


def _xy_reprojection_error(
    params: np.ndarray,
    correspondences: Sequence[Correspondence],
) -> np.ndarray:
    """
    Compute stacked (x, y) reprojection residuals for all views.
    """
    matrix, distortion = unpack_intrinsics(params)
    poses = params[INTRINSIC_PARAM_COUNT:].reshape(-1, POSE_PARAM_COUNT)

    residuals = []
    for c, pose in zip(correspondences, poses):
        projected, _ = cv2.projectPoints(
            c.object_points.astype(np.float64),
            pose[0:3],
            pose[3:6],
            matrix,
            distortion,
        )
        residuals.append((projected[:, 0, :] - c.image_points).ravel())

    return np.concatenate(residuals)


def refine_camera_model(
    correspondences: Sequence[Correspondence],
    image_size: tuple[int, int],
    config: SolverConfig | None = None,
) -> CameraModel:
    """
    Run joint least-squares refinement of every camera parameter.

    Starts from the closed-form camera matrix, zero distortion and PnP poses.

    Args:
        correspondences: Pattern observations, one per view
        image_size: (width, height) of the calibration images
        config: Stop criteria (max_iterations bounds function evaluations,
            epsilon is used for ftol, xtol and gtol)

    Returns:
        CameraModel with the refined parameters and final RMSE
    """
    config = config or SolverConfig()

    initial_matrix = initial_camera_matrix(correspondences, image_size)
    initial_params = np.hstack([
        pack_intrinsics(initial_matrix, np.zeros(DISTORTION_COUNT)),
        _initial_poses(correspondences, initial_matrix).ravel(),
    ])

    sparsity = _get_sparsity_pattern([c.point_count for c in correspondences])

    # Run optimization
    result = least_squares(
        _xy_reprojection_error,
        initial_params,
        jac_sparsity=sparsity,
        verbose=0,
        x_scale="jac",
        loss="linear",
        ftol=config.epsilon,
        xtol=config.epsilon,
        gtol=config.epsilon,
        max_nfev=config.max_iterations,
        method="trf",
        args=(correspondences,),
    )
    logger.debug("least_squares finished after %d evaluations: %s", result.nfev, result.message)

    matrix, distortion = unpack_intrinsics(result.x)
    poses = result.x[INTRINSIC_PARAM_COUNT:].reshape(-1, POSE_PARAM_COUNT)

    # Compute final RMSE
    final_error = result.fun.reshape(-1, 2)
    rmse = float(np.sqrt(np.mean(np.sum(final_error**2, axis=1))))

    return CameraModel(
        image_size=(int(image_size[0]), int(image_size[1])),
        camera_matrix=matrix,
        distortion=distortion,
        rotation_vectors=poses[:, 0:3].copy(),
        translation_vectors=poses[:, 3:6].copy(),
        rms_error=rmse,
        source_ids=tuple(c.source_id for c in correspondences),
    )
