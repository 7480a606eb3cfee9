"""
Calibration result persistence.

The JSON record has a fixed shape:

    {
      "camera_matrix": [[fx, 0, cx], [0, fy, cy], [0, 0, 1]],
      "distortion_parameters": [k1, k2, p1, p2, k3],
      "rotation_vectors": [[rx, ry, rz], ...],
      "translation_vectors": [[tx, ty, tz], ...],
      "total_error": float
    }
"""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path

import numpy as np

from .types import CameraModel, ErrorReport

logger = logging.getLogger(__name__)


def calibration_to_record(model: CameraModel, report: ErrorReport) -> dict:
    """
    Convert a model and its error report to plain JSON-ready values.

    total_error is None when no view could be evaluated.
    """
    total_error = float(report.mean_error)
    return {
        "camera_matrix": model.camera_matrix.astype(np.float64).tolist(),
        "distortion_parameters": model.distortion.astype(np.float64).ravel().tolist(),
        "rotation_vectors": model.rotation_vectors.astype(np.float64).reshape(-1, 3).tolist(),
        "translation_vectors": model.translation_vectors.astype(np.float64)
        .reshape(-1, 3)
        .tolist(),
        "total_error": None if math.isnan(total_error) else total_error,
    }


def calibration_from_record(
    record: dict,
    image_size: tuple[int, int] = (0, 0),
) -> CameraModel:
    """
    Rebuild a CameraModel from a saved record.

    The record does not store the calibration image size; pass it if known.

    Raises:
        KeyError: If a required key is missing
    """
    rotations = np.array(record.get("rotation_vectors", []), dtype=np.float64).reshape(-1, 3)
    translations = np.array(record.get("translation_vectors", []), dtype=np.float64).reshape(
        -1, 3
    )
    total_error = record.get("total_error")

    return CameraModel(
        image_size=(int(image_size[0]), int(image_size[1])),
        camera_matrix=np.array(record["camera_matrix"], dtype=np.float64),
        distortion=np.array(record["distortion_parameters"], dtype=np.float64).ravel(),
        rotation_vectors=rotations,
        translation_vectors=translations,
        rms_error=float(total_error) if total_error is not None else math.nan,
    )


def save_calibration_json(path: Path, model: CameraModel, report: ErrorReport) -> Path:
    """
    Write the calibration record as pretty-printed JSON.

    Parent directories are created as needed.

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(calibration_to_record(model, report), f, indent=2)

    logger.info("Calibration written to %s", path)
    return path


def load_calibration_json(path: Path, image_size: tuple[int, int] = (0, 0)) -> CameraModel:
    """
    Read a calibration record written by save_calibration_json.
    """
    with open(path) as f:
        record = json.load(f)
    return calibration_from_record(record, image_size)


def save_failure_report(path: Path, failed: list[str] | tuple[str, ...]) -> Path | None:
    """
    Write the list of images where detection failed.

    No file is written when nothing failed; a report left over from an
    earlier run is removed so it can't be mistaken for this one.

    Returns:
        The path written, or None
    """
    path = Path(path)

    if not failed:
        logger.info("No failed images to report")
        if path.exists():
            path.unlink()
        return None

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump({"failed_images": list(failed)}, f, indent=2)

    logger.info("Failure report for %d image(s) written to %s", len(failed), path)
    return path
