"""
Intrinsic camera calibration.

Pure functions - no threading, no state. Caller manages image collection.
"""

from __future__ import annotations

import logging
from typing import Sequence

import cv2
import numpy as np

from ..config import SolverConfig
from ..errors import InsufficientDataError
from ..types import CameraModel, Correspondence

logger = logging.getLogger(__name__)

# k1, k2, p1, p2, k3
DISTORTION_COUNT = 5


def _split_points(
    correspondences: Sequence[Correspondence],
) -> tuple[list[np.ndarray], list[np.ndarray]]:
    # OpenCV's calibration routines only accept float32 point sets
    obj = [c.object_points.astype(np.float32).reshape(-1, 3) for c in correspondences]
    img = [c.image_points.astype(np.float32).reshape(-1, 2) for c in correspondences]
    return obj, img


def solver_criteria(config: SolverConfig) -> tuple[int, int, float]:
    """OpenCV stop criteria: max_iterations OR epsilon, whichever first."""
    return (
        cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER,
        config.max_iterations,
        config.epsilon,
    )


def check_views(
    correspondences: Sequence[Correspondence],
    image_size: tuple[int, int],
    min_views: int,
) -> None:
    """
    Validate solver input.

    Raises:
        InsufficientDataError: If fewer than min_views views are given
        ValueError: If image_size is not positive
    """
    if len(correspondences) < min_views:
        raise InsufficientDataError(
            f"Insufficient views for calibration: {len(correspondences)} "
            f"(need at least {min_views})",
            view_count=len(correspondences),
            required=min_views,
        )

    width, height = image_size
    if width <= 0 or height <= 0:
        raise ValueError(f"image_size must be positive, got {image_size}")


def initial_camera_matrix(
    correspondences: Sequence[Correspondence],
    image_size: tuple[int, int],
) -> np.ndarray:
    """
    Closed-form intrinsic estimate from the per-view homographies.

    Assumes no distortion and the principal point at the image center.

    Args:
        correspondences: Planar pattern observations
        image_size: (width, height)

    Returns:
        3x3 camera matrix
    """
    obj, img = _split_points(correspondences)
    return cv2.initCameraMatrix2D(obj, img, tuple(int(v) for v in image_size))


def calibrate_camera(
    correspondences: Sequence[Correspondence],
    image_size: tuple[int, int],
    config: SolverConfig | None = None,
) -> CameraModel:
    """
    Solve for one shared camera matrix and distortion vector plus one pose
    per view, minimizing total squared reprojection error.

    Args:
        correspondences: One entry per image where the pattern was found
        image_size: (width, height) of the calibration images
        config: Solver settings (backend, minimum views, stop criteria)

    Returns:
        CameraModel with len(correspondences) poses

    Raises:
        InsufficientDataError: If too few views are supplied
        ValueError: For an unknown solver method
    """
    config = config or SolverConfig()
    check_views(correspondences, image_size, config.min_views)

    if config.method == "scipy":
        from .refinement import refine_camera_model

        model = refine_camera_model(correspondences, image_size, config)
    elif config.method == "opencv":
        model = _calibrate_opencv(correspondences, image_size, config)
    else:
        raise ValueError(f"Unknown solver method: {config.method}")

    logger.info("Camera calibrated: RMS %.6f px over %d views", model.rms_error, model.view_count)
    logger.info("Camera matrix:\n%s", model.camera_matrix)
    logger.info("Distortion parameters: %s", model.distortion)

    return model


def _calibrate_opencv(
    correspondences: Sequence[Correspondence],
    image_size: tuple[int, int],
    config: SolverConfig,
) -> CameraModel:
    obj, img = _split_points(correspondences)
    width, height = (int(v) for v in image_size)

    initial = initial_camera_matrix(correspondences, (width, height))

    error, matrix, dist, rvecs, tvecs = cv2.calibrateCamera(
        obj,
        img,
        (width, height),
        initial,
        np.zeros(DISTORTION_COUNT, dtype=np.float64),
        flags=cv2.CALIB_USE_INTRINSIC_GUESS,
        criteria=solver_criteria(config),
    )

    return CameraModel(
        image_size=(width, height),
        camera_matrix=np.asarray(matrix, dtype=np.float64),
        distortion=np.asarray(dist, dtype=np.float64).ravel()[:DISTORTION_COUNT],
        rotation_vectors=np.array([np.ravel(r) for r in rvecs], dtype=np.float64),
        translation_vectors=np.array([np.ravel(t) for t in tvecs], dtype=np.float64),
        rms_error=float(error),
        source_ids=tuple(c.source_id for c in correspondences),
    )
