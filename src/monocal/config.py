"""
Configuration loading/saving.

One CalibrationConfig tree holds every tunable constant of a calibration
run (window sizes, stop criteria, overlay styling, output paths).
Pure functions operating on dataclasses, TOML on disk.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

import rtoml

from .errors import ConfigError
from .types import PatternKind, PatternSpec


# ============================================================================
# Configuration Sections
# ============================================================================


@dataclass(frozen=True, slots=True)
class DetectionConfig:
    """
    Sub-pixel corner refinement settings.

    Refinement stops after max_iterations or once a corner moves less than
    epsilon pixels, whichever comes first.
    """

    subpix_window: tuple[int, int] = (11, 11)  # half-size of the search window
    zero_zone: tuple[int, int] = (-1, -1)  # (-1, -1) disables the dead zone
    max_iterations: int = 30
    epsilon: float = 0.001


@dataclass(frozen=True, slots=True)
class SolverConfig:
    """
    Camera-parameter solver settings.

    Same max-iterations OR epsilon stopping policy as DetectionConfig,
    with its own constants.
    """

    method: str = "opencv"  # "opencv" or "scipy"
    min_views: int = 10
    max_iterations: int = 100
    epsilon: float = 1e-12


@dataclass(frozen=True, slots=True)
class UndistortConfig:
    alpha: float = 1.0  # 1.0 keeps every source pixel, 0.0 keeps only valid ones
    crop: bool = False  # crop the output to the valid-pixel ROI


@dataclass(frozen=True, slots=True)
class PreviewConfig:
    """
    On-screen preview of detections. Disabled for headless runs.
    """

    enabled: bool = False
    window_name: str = "img"
    window_size: tuple[int, int] = (800, 600)
    wait_ms: int = 1000  # how long each frame stays on screen
    text_origin: tuple[int, int] = (10, 100)
    font_scale: float = 3.0
    text_color: tuple[int, int, int] = (0, 255, 0)  # BGR
    text_thickness: int = 2


@dataclass(frozen=True, slots=True)
class CalibrationConfig:
    """
    Complete run configuration.
    Loaded from a TOML file; relative paths are resolved against its folder.
    """

    pattern: PatternSpec
    image_dir: Path = Path("img")
    image_format: str = "jpeg"
    image_size: tuple[int, int] | None = None  # (width, height), None = first image
    undistort_image: Path | None = None
    output_dir: Path = Path("out")
    calibration_json: str = "calibration.json"
    failure_report: str = "failed_images.json"
    result_image: str = "result.jpeg"
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    undistort: UndistortConfig = field(default_factory=UndistortConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    max_workers: int | None = None  # evaluator thread pool, None = executor default

    @property
    def calibration_json_path(self) -> Path:
        return self.output_dir / self.calibration_json

    @property
    def failure_report_path(self) -> Path:
        return self.output_dir / self.failure_report

    @property
    def result_image_path(self) -> Path:
        return self.output_dir / self.result_image

    def resolve(self, base: Path) -> CalibrationConfig:
        """Return a copy with relative paths anchored at base."""

        def anchor(path: Path | None) -> Path | None:
            if path is None or path.is_absolute():
                return path
            return base / path

        return replace(
            self,
            image_dir=anchor(self.image_dir),
            undistort_image=anchor(self.undistort_image),
            output_dir=anchor(self.output_dir),
        )


# ============================================================================
# TOML Configuration
# ============================================================================


def create_default_config(pattern: PatternSpec | None = None) -> CalibrationConfig:
    """
    Create a default configuration.

    The default target is a chessboard with 9x6 inner corners. No image is
    undistorted unless one is named.
    """
    if pattern is None:
        pattern = PatternSpec(kind=PatternKind.CHESSBOARD, rows=6, cols=9)
    return CalibrationConfig(pattern=pattern)


def load_config(path: Path) -> CalibrationConfig:
    """
    Load run configuration from TOML file.

    Missing keys take their defaults. Relative paths are resolved against
    the directory holding the file.

    Args:
        path: Path to config.toml file

    Returns:
        CalibrationConfig dataclass

    Raises:
        ConfigError: If the file is missing or holds invalid values
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = rtoml.load(path)
    except rtoml.TomlParsingError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    try:
        config = _config_from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    return config.resolve(path.parent)


def _config_from_dict(data: dict) -> CalibrationConfig:
    pattern_data = data.get("pattern", {})
    pattern = PatternSpec(
        kind=PatternKind.parse(pattern_data.get("kind", "chessboard")),
        rows=int(pattern_data.get("rows", 6)),
        cols=int(pattern_data.get("cols", 9)),
        square_size=float(pattern_data.get("square_size", 1.0)),
    )

    det = data.get("detection", {})
    detection = DetectionConfig(
        subpix_window=_int_pair(det.get("subpix_window", [11, 11]), "subpix_window"),
        zero_zone=_int_pair(det.get("zero_zone", [-1, -1]), "zero_zone"),
        max_iterations=int(det.get("max_iterations", 30)),
        epsilon=float(det.get("epsilon", 0.001)),
    )

    sol = data.get("solver", {})
    solver = SolverConfig(
        method=str(sol.get("method", "opencv")),
        min_views=int(sol.get("min_views", 10)),
        max_iterations=int(sol.get("max_iterations", 100)),
        epsilon=float(sol.get("epsilon", 1e-12)),
    )
    if solver.method not in ("opencv", "scipy"):
        raise ValueError(f"solver.method must be 'opencv' or 'scipy', got '{solver.method}'")
    if detection.max_iterations <= 0 or solver.max_iterations <= 0:
        raise ValueError("max_iterations must be positive")

    und = data.get("undistort", {})
    undistort = UndistortConfig(
        alpha=float(und.get("alpha", 1.0)),
        crop=bool(und.get("crop", False)),
    )

    prev = data.get("preview", {})
    preview = PreviewConfig(
        enabled=bool(prev.get("enabled", False)),
        window_name=str(prev.get("window_name", "img")),
        window_size=_int_pair(prev.get("window_size", [800, 600]), "window_size"),
        wait_ms=int(prev.get("wait_ms", 1000)),
        text_origin=_int_pair(prev.get("text_origin", [10, 100]), "text_origin"),
        font_scale=float(prev.get("font_scale", 3.0)),
        text_color=tuple(int(c) for c in prev.get("text_color", [0, 255, 0])),
        text_thickness=int(prev.get("text_thickness", 2)),
    )

    image_size = data.get("image_size")
    if image_size is not None:
        image_size = _int_pair(image_size, "image_size")
        if image_size[0] <= 0 or image_size[1] <= 0:
            raise ValueError(f"image_size must be positive, got {image_size}")

    undistort_image = data.get("undistort_image")
    max_workers = int(data.get("evaluation", {}).get("max_workers", 0))

    return CalibrationConfig(
        pattern=pattern,
        image_dir=Path(data.get("image_dir", "img")),
        image_format=str(data.get("image_format", "jpeg")),
        image_size=image_size,
        undistort_image=Path(undistort_image) if undistort_image else None,
        output_dir=Path(data.get("output_dir", "out")),
        calibration_json=str(data.get("calibration_json", "calibration.json")),
        failure_report=str(data.get("failure_report", "failed_images.json")),
        result_image=str(data.get("result_image", "result.jpeg")),
        detection=detection,
        solver=solver,
        undistort=undistort,
        preview=preview,
        max_workers=max_workers if max_workers > 0 else None,
    )


def _int_pair(value, name: str) -> tuple[int, int]:
    if len(value) != 2:
        raise ValueError(f"{name} must have two entries, got {value!r}")
    return (int(value[0]), int(value[1]))


def save_config(config: CalibrationConfig, path: Path) -> None:
    """
    Save run configuration to TOML file.

    Args:
        config: CalibrationConfig dataclass
        path: Path to save config.toml
    """
    data = {
        "image_dir": str(config.image_dir),
        "image_format": config.image_format,
        "output_dir": str(config.output_dir),
        "calibration_json": config.calibration_json,
        "failure_report": config.failure_report,
        "result_image": config.result_image,
    }

    # TOML has no null - optional keys are omitted instead
    if config.image_size is not None:
        data["image_size"] = list(config.image_size)
    if config.undistort_image is not None:
        data["undistort_image"] = str(config.undistort_image)

    # Tables go after plain keys
    data.update({
        "pattern": {
            "kind": config.pattern.kind.value,
            "rows": config.pattern.rows,
            "cols": config.pattern.cols,
            "square_size": config.pattern.square_size,
        },
        "detection": {
            "subpix_window": list(config.detection.subpix_window),
            "zero_zone": list(config.detection.zero_zone),
            "max_iterations": config.detection.max_iterations,
            "epsilon": config.detection.epsilon,
        },
        "solver": {
            "method": config.solver.method,
            "min_views": config.solver.min_views,
            "max_iterations": config.solver.max_iterations,
            "epsilon": config.solver.epsilon,
        },
        "undistort": {
            "alpha": config.undistort.alpha,
            "crop": config.undistort.crop,
        },
        "preview": {
            "enabled": config.preview.enabled,
            "window_name": config.preview.window_name,
            "window_size": list(config.preview.window_size),
            "wait_ms": config.preview.wait_ms,
            "text_origin": list(config.preview.text_origin),
            "font_scale": config.preview.font_scale,
            "text_color": list(config.preview.text_color),
            "text_thickness": config.preview.text_thickness,
        },
        "evaluation": {
            "max_workers": config.max_workers or 0,
        },
    })

    # Ensure parent directory exists
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(data, f)
