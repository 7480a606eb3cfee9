"""
Calibration pattern detection.

Pure functions - no threading, no state. A failed detection returns None;
it is never an error.
"""

from __future__ import annotations

import logging
from typing import Callable

import cv2
import numpy as np

from ..config import DetectionConfig, PreviewConfig
from ..errors import UnsupportedPatternError
from ..preview import Preview, draw_detection
from ..types import PatternKind, PatternSpec

logger = logging.getLogger(__name__)

CHESSBOARD_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_FAST_CHECK | cv2.CALIB_CB_NORMALIZE_IMAGE
)

Detector = Callable[[np.ndarray, PatternSpec, DetectionConfig], "np.ndarray | None"]


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def subpixel_criteria(config: DetectionConfig) -> tuple[int, int, float]:
    """OpenCV stop criteria: max_iterations OR epsilon, whichever first."""
    return (
        cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER,
        config.max_iterations,
        config.epsilon,
    )


# ============================================================================
# Chessboard
# ============================================================================


def detect_chessboard_points(
    image: np.ndarray,
    spec: PatternSpec,
    config: DetectionConfig | None = None,
) -> np.ndarray | None:
    """
    Find the inner corners of a chessboard and refine them to sub-pixel.

    Args:
        image: BGR or grayscale image
        spec: Pattern with rows x cols inner corners
        config: Sub-pixel refinement settings

    Returns:
        (rows * cols, 2) corner locations, or None if the board wasn't found
    """
    config = config or DetectionConfig()
    gray = _to_gray(image)

    found, corners = cv2.findChessboardCorners(gray, spec.pattern_size, None, CHESSBOARD_FLAGS)
    if not found or corners is None:
        return None

    corners = cv2.cornerSubPix(
        gray,
        corners,
        config.subpix_window,
        config.zero_zone,
        subpixel_criteria(config),
    )

    return corners.reshape(-1, 2).astype(np.float64)


# ============================================================================
# Circle Grid
# ============================================================================


def create_blob_detector() -> cv2.SimpleBlobDetector:
    """
    Blob detector for filled dark circles, using OpenCV's default
    area, circularity, convexity and inertia thresholds.
    """
    params = cv2.SimpleBlobDetector_Params()
    return cv2.SimpleBlobDetector_create(params)


def detect_circle_grid_points(
    image: np.ndarray,
    spec: PatternSpec,
    config: DetectionConfig | None = None,
) -> np.ndarray | None:
    """
    Find the centers of a symmetric grid of filled circles.

    The grayscale image is histogram-equalized first so that blob
    thresholds behave the same under different lighting.

    Returns:
        (rows * cols, 2) circle centers, or None if the grid wasn't found
    """
    gray = cv2.equalizeHist(_to_gray(image))

    found, centers = cv2.findCirclesGrid(
        gray,
        spec.pattern_size,
        flags=cv2.CALIB_CB_SYMMETRIC_GRID,
        blobDetector=create_blob_detector(),
    )
    if not found or centers is None:
        return None

    return centers.reshape(-1, 2).astype(np.float64)


# ============================================================================
# Dispatch
# ============================================================================

_DETECTORS: dict[PatternKind, Detector] = {
    PatternKind.CHESSBOARD: detect_chessboard_points,
    PatternKind.SYMMETRIC_CIRCLE_GRID: detect_circle_grid_points,
}


def get_detector(kind: PatternKind) -> Detector:
    """
    Look up the detection function for a pattern kind.

    Raises:
        UnsupportedPatternError: For asymmetric circle grids and ChArUco boards
    """
    kind = PatternKind.parse(kind)
    try:
        return _DETECTORS[kind]
    except KeyError:
        raise UnsupportedPatternError(
            f"Pattern '{kind.value}' is not implemented; "
            f"supported: {', '.join(k.value for k in _DETECTORS)}"
        ) from None


def detect_pattern_points(
    image: np.ndarray,
    spec: PatternSpec,
    config: DetectionConfig | None = None,
    preview: Preview | None = None,
    label: str | None = None,
    preview_config: PreviewConfig | None = None,
) -> np.ndarray | None:
    """
    Detect the pattern described by spec in a single image.

    If a preview is given, successful detections are drawn on a copy of the
    image and shown; the returned points are unaffected.

    Args:
        image: BGR or grayscale image
        spec: Calibration target
        config: Sub-pixel refinement settings
        preview: Optional display collaborator
        label: Text overlaid on the preview frame (e.g. the file name)
        preview_config: Overlay styling

    Returns:
        (rows * cols, 2) image points in canonical order, or None
    """
    detector = get_detector(spec.kind)
    points = detector(image, spec, config or DetectionConfig())

    if points is None:
        logger.debug("No %s found in %s", spec.kind.value, label or "image")
        return None

    if preview is not None:
        preview.show(draw_detection(image, spec, points, label, preview_config))

    return points
