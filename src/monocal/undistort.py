"""
Lens distortion removal.

Everything here is parametrized by a CameraModel alone, so it works on
images of any size, not just the calibration images.
"""

from __future__ import annotations

import cv2
import numpy as np

from .types import CameraModel


def optimal_camera_matrix(
    model: CameraModel,
    image_size: tuple[int, int],
    alpha: float = 1.0,
) -> tuple[np.ndarray, tuple[int, int, int, int]]:
    """
    Camera matrix for the undistorted image.

    Args:
        model: Solved camera model
        image_size: (width, height) of the image to undistort
        alpha: Free scaling, 1.0 keeps every source pixel, 0.0 keeps only
            valid pixels

    Returns:
        (new 3x3 matrix, valid-pixel ROI as (x, y, w, h))
    """
    size = (int(image_size[0]), int(image_size[1]))
    new_matrix, roi = cv2.getOptimalNewCameraMatrix(
        model.camera_matrix,
        model.distortion,
        size,
        alpha,
        size,
    )
    return new_matrix, tuple(int(v) for v in roi)


def compute_undistortion_maps(
    model: CameraModel,
    image_size: tuple[int, int],
    alpha: float = 1.0,
) -> tuple[np.ndarray, np.ndarray, tuple[int, int, int, int]]:
    """
    For every output pixel, the source location in the distorted image.

    Returns:
        (map_x, map_y, roi) with float32 maps of shape (height, width)
    """
    size = (int(image_size[0]), int(image_size[1]))
    new_matrix, roi = optimal_camera_matrix(model, size, alpha)

    map_x, map_y = cv2.initUndistortRectifyMap(
        model.camera_matrix,
        model.distortion,
        None,
        new_matrix,
        size,
        cv2.CV_32FC1,
    )
    return map_x, map_y, roi


def undistort_image(
    image: np.ndarray,
    model: CameraModel,
    alpha: float = 1.0,
    crop: bool = False,
    interpolation: int = cv2.INTER_LINEAR,
) -> np.ndarray:
    """
    Remove lens distortion from an image.

    Args:
        image: Input image (any size, any channel count)
        model: Solved camera model
        alpha: Free scaling passed to optimal_camera_matrix
        crop: Crop the result to the valid-pixel ROI
        interpolation: OpenCV interpolation flag

    Returns:
        Undistorted image, same size as the input unless cropped
    """
    height, width = image.shape[:2]
    map_x, map_y, roi = compute_undistortion_maps(model, (width, height), alpha)

    result = cv2.remap(image, map_x, map_y, interpolation, borderMode=cv2.BORDER_CONSTANT)

    if crop:
        x, y, w, h = roi
        if w > 0 and h > 0:
            result = result[y : y + h, x : x + w]

    return result


def undistort_points(points: np.ndarray, model: CameraModel) -> np.ndarray:
    """
    Undistort 2D pixel coordinates.

    Args:
        points: (n, 2) distorted pixel coordinates
        model: Solved camera model

    Returns:
        (n, 2) undistorted pixel coordinates under the original camera matrix
    """
    if len(points) == 0:
        return np.array([], dtype=np.float64).reshape(0, 2)

    points = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    undistorted = cv2.undistortPoints(
        points,
        model.camera_matrix,
        model.distortion,
        P=model.camera_matrix,
    )
    return undistorted.reshape(-1, 2)
