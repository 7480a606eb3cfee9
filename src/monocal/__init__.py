# monocal - single-camera intrinsic calibration

__version__ = "0.1.0"

# Core types
from monocal.types import (
    PatternKind,
    PatternSpec,
    Correspondence,
    CollectionResult,
    CameraModel,
    ErrorReport,
    canonical_object_points,
)

# Errors
from monocal.errors import (
    MonocalError,
    ConfigError,
    ImageReadError,
    InsufficientDataError,
    DegenerateProjectionError,
    UnsupportedPatternError,
)

# Configuration
from monocal.config import (
    CalibrationConfig,
    DetectionConfig,
    SolverConfig,
    UndistortConfig,
    PreviewConfig,
    load_config,
    save_config,
    create_default_config,
)

# Calibration
from monocal.calibration import (
    detect_pattern_points,
    collect_correspondences,
    calibrate_camera,
    evaluate_reprojection_error,
)

# Undistortion
from monocal.undistort import (
    undistort_image,
    undistort_points,
)

# Export
from monocal.export import (
    save_calibration_json,
    load_calibration_json,
    save_failure_report,
)

# Pipeline
from monocal.pipeline import (
    CalibrationRun,
    run_calibration,
    run_undistortion,
)

__all__ = [
    # Core types
    "PatternKind",
    "PatternSpec",
    "Correspondence",
    "CollectionResult",
    "CameraModel",
    "ErrorReport",
    "canonical_object_points",
    # Errors
    "MonocalError",
    "ConfigError",
    "ImageReadError",
    "InsufficientDataError",
    "DegenerateProjectionError",
    "UnsupportedPatternError",
    # Configuration
    "CalibrationConfig",
    "DetectionConfig",
    "SolverConfig",
    "UndistortConfig",
    "PreviewConfig",
    "load_config",
    "save_config",
    "create_default_config",
    # Calibration
    "detect_pattern_points",
    "collect_correspondences",
    "calibrate_camera",
    "evaluate_reprojection_error",
    # Undistortion
    "undistort_image",
    "undistort_points",
    # Export
    "save_calibration_json",
    "load_calibration_json",
    "save_failure_report",
    # Pipeline
    "CalibrationRun",
    "run_calibration",
    "run_undistortion",
]
