"""
Calibration module for monocal.

Detection, correspondence collection, solving and error evaluation.
Functions take dataclasses and return dataclasses; only the error evaluator
uses threads internally.
"""

from .detection import (
    detect_chessboard_points,
    detect_circle_grid_points,
    detect_pattern_points,
    get_detector,
)

from .collection import (
    collect_correspondences,
    list_image_paths,
    read_image,
)

from .intrinsic import (
    calibrate_camera,
    initial_camera_matrix,
)

from .refinement import (
    refine_camera_model,
)

from .reprojection import (
    compute_view_error,
    evaluate_reprojection_error,
    project_view,
)

__all__ = [
    # Detection
    "detect_chessboard_points",
    "detect_circle_grid_points",
    "detect_pattern_points",
    "get_detector",
    # Collection
    "collect_correspondences",
    "list_image_paths",
    "read_image",
    # Solver
    "calibrate_camera",
    "initial_camera_matrix",
    "refine_camera_model",
    # Reprojection
    "compute_view_error",
    "evaluate_reprojection_error",
    "project_view",
]
