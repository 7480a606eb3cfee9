"""
End-to-end calibration run.

images -> detection -> correspondences -> solver -> {error report, undistortion}
-> JSON export. Each stage's output is created once and never modified.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .calibration.collection import collect_correspondences, list_image_paths, read_image
from .calibration.detection import get_detector
from .calibration.intrinsic import calibrate_camera
from .calibration.reprojection import evaluate_reprojection_error
from .config import CalibrationConfig
from .errors import InsufficientDataError, MonocalError
from .export import save_calibration_json, save_failure_report
from .preview import Preview, create_preview
from .types import CameraModel, CollectionResult, ErrorReport
from .undistort import undistort_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CalibrationRun:
    """
    Everything one calibration run produced.
    """

    collection: CollectionResult
    model: CameraModel
    report: ErrorReport
    calibration_path: Path
    failure_report_path: Path | None = None
    result_image_path: Path | None = None


def write_image(path: Path, image: np.ndarray) -> Path:
    """
    Encode an image to disk, creating parent directories.

    Raises:
        MonocalError: If OpenCV can't write the file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise MonocalError(f"Failed to write image: {path}")
    return path


def run_undistortion(
    model: CameraModel,
    image_path: Path,
    output_path: Path,
    alpha: float = 1.0,
    crop: bool = False,
) -> Path:
    """
    Undistort one image file with a solved model and write the result.

    Raises:
        ImageReadError: If the input image can't be read
        MonocalError: If the output can't be written
    """
    image = read_image(image_path)
    result = undistort_image(image, model, alpha=alpha, crop=crop)
    write_image(output_path, result)
    logger.info("Undistorted %s -> %s", image_path, output_path)
    return Path(output_path)


def run_calibration(
    config: CalibrationConfig,
    preview: Preview | None = None,
) -> CalibrationRun:
    """
    Run the full calibration pipeline described by config.

    Per-image detection failures are recorded in the failure report and do
    not stop the run. The failure report is written before solving so it
    exists even when too few views remain.

    Args:
        config: Run configuration (paths already resolved)
        preview: Display collaborator; built from config.preview if None

    Returns:
        CalibrationRun with the model, its error report and written paths

    Raises:
        ImageReadError: If the image directory can't be read
        UnsupportedPatternError: For unimplemented pattern kinds
        InsufficientDataError: If too few views were detected
    """
    start_time = time.perf_counter()

    # Fail fast on unimplemented patterns before touching the disk
    get_detector(config.pattern.kind)

    image_paths = list_image_paths(config.image_dir, config.image_format)
    logger.info(
        "Found %d .%s image(s) in %s", len(image_paths), config.image_format, config.image_dir
    )

    if preview is None:
        preview = create_preview(config.preview)

    collection = collect_correspondences(
        image_paths,
        config.pattern,
        config.detection,
        preview=preview,
        preview_config=config.preview,
    )

    config.output_dir.mkdir(parents=True, exist_ok=True)
    failure_path = save_failure_report(config.failure_report_path, collection.failed)

    image_size = config.image_size or collection.image_size
    if image_size is None:
        raise InsufficientDataError(
            f"No readable images in {config.image_dir}",
            view_count=0,
            required=config.solver.min_views,
        )

    model = calibrate_camera(collection.correspondences, image_size, config.solver)
    report = evaluate_reprojection_error(
        collection.correspondences, model, max_workers=config.max_workers
    )
    logger.info("Total error: %.6f px", report.mean_error)

    calibration_path = save_calibration_json(config.calibration_json_path, model, report)

    result_path = None
    if config.undistort_image is not None:
        result_path = run_undistortion(
            model,
            config.undistort_image,
            config.result_image_path,
            alpha=config.undistort.alpha,
            crop=config.undistort.crop,
        )

    logger.info("Processing time: %.3f s", time.perf_counter() - start_time)

    return CalibrationRun(
        collection=collection,
        model=model,
        report=report,
        calibration_path=calibration_path,
        failure_report_path=failure_path,
        result_image_path=result_path,
    )
