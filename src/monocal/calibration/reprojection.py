"""
Reprojection error of a solved camera model.

Each view's error depends only on read-only inputs, so views are evaluated
on a thread pool and reduced afterwards.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import cv2
import numpy as np

from ..errors import DegenerateProjectionError
from ..types import CameraModel, Correspondence, ErrorReport

logger = logging.getLogger(__name__)


def project_view(
    object_points: np.ndarray,
    rvec: np.ndarray,
    tvec: np.ndarray,
    model: CameraModel,
) -> np.ndarray:
    """
    Project pattern points through one pose and the shared intrinsics.

    Returns:
        (n, 2) predicted image points

    Raises:
        DegenerateProjectionError: If OpenCV rejects the pose or the
            projection is not finite
    """
    try:
        projected, _ = cv2.projectPoints(
            np.asarray(object_points, dtype=np.float64).reshape(-1, 3),
            np.asarray(rvec, dtype=np.float64).reshape(3),
            np.asarray(tvec, dtype=np.float64).reshape(3),
            model.camera_matrix,
            model.distortion,
        )
    except cv2.error as e:
        raise DegenerateProjectionError(f"Projection failed: {e}") from e

    projected = projected.reshape(-1, 2)
    if not np.all(np.isfinite(projected)):
        raise DegenerateProjectionError("Projection produced non-finite points")

    return projected


def compute_view_error(
    correspondence: Correspondence,
    rvec: np.ndarray,
    tvec: np.ndarray,
    model: CameraModel,
) -> float:
    """
    RMS Euclidean distance between projected and observed points of one view.

    Raises:
        DegenerateProjectionError: If the view can't be projected
    """
    projected = project_view(correspondence.object_points, rvec, tvec, model)
    observed = np.asarray(correspondence.image_points, dtype=np.float64).reshape(-1, 2)
    squared = np.sum((observed - projected) ** 2, axis=1)
    return float(np.sqrt(np.mean(squared)))


def evaluate_reprojection_error(
    correspondences: Sequence[Correspondence],
    model: CameraModel,
    max_workers: int | None = None,
) -> ErrorReport:
    """
    Compute per-view RMS reprojection error and its mean.

    A view whose projection is degenerate is reported as NaN, listed in
    degenerate_views and left out of the mean.

    Args:
        correspondences: The views the model was solved from, in the same order
        model: Solved camera model
        max_workers: Thread pool size (None = executor default)

    Returns:
        ErrorReport

    Raises:
        ValueError: If the number of views doesn't match the model's poses
    """
    if len(correspondences) != model.view_count:
        raise ValueError(
            f"{len(correspondences)} correspondences but the model has "
            f"{model.view_count} poses"
        )

    def view_error(index: int) -> float:
        try:
            return compute_view_error(
                correspondences[index],
                model.rotation_vectors[index],
                model.translation_vectors[index],
                model,
            )
        except DegenerateProjectionError as e:
            logger.warning(
                "Reprojection of view %d (%s) failed: %s",
                index,
                correspondences[index].source_id,
                e,
            )
            return math.nan

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        errors = list(executor.map(view_error, range(len(correspondences))))

    per_image = np.array(errors, dtype=np.float64)
    valid = np.isfinite(per_image)
    degenerate = tuple(int(i) for i in np.flatnonzero(~valid))

    mean_error = float(np.mean(per_image[valid])) if np.any(valid) else math.nan

    return ErrorReport(
        per_image_error=per_image,
        mean_error=mean_error,
        degenerate_views=degenerate,
    )
