"""
Correspondence collection over a set of calibration images.

Images are processed one at a time, in input order. A failed detection or an
unreadable file only lands the image on the failure list.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import cv2
import numpy as np

from ..config import DetectionConfig, PreviewConfig
from ..errors import ImageReadError
from ..preview import NullPreview, Preview
from ..types import CollectionResult, Correspondence, PatternSpec, canonical_object_points
from .detection import detect_pattern_points, get_detector

logger = logging.getLogger(__name__)


def list_image_paths(directory: Path, extension: str = "jpeg") -> list[Path]:
    """
    List the images with the given extension in a directory.

    Matching is case-insensitive and the leading dot is optional. Paths are
    sorted by name so runs are reproducible.

    Raises:
        ImageReadError: If the directory does not exist or can't be listed
    """
    directory = Path(directory)
    suffix = "." + extension.lower().lstrip(".")

    if not directory.is_dir():
        raise ImageReadError(f"Image directory not found: {directory}", path=str(directory))

    try:
        entries = list(directory.iterdir())
    except OSError as e:
        raise ImageReadError(
            f"Cannot read image directory {directory}: {e}", path=str(directory)
        ) from e

    return sorted(p for p in entries if p.is_file() and p.suffix.lower() == suffix)


def read_image(path: Path) -> np.ndarray:
    """
    Decode an image file as BGR.

    Raises:
        ImageReadError: If the file is missing or can't be decoded
    """
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise ImageReadError(f"Failed to read image: {path}", path=str(path))
    return image


def collect_correspondences(
    image_paths: Iterable[Path],
    spec: PatternSpec,
    config: DetectionConfig | None = None,
    preview: Preview | None = None,
    preview_config: PreviewConfig | None = None,
) -> CollectionResult:
    """
    Detect the pattern in every image and pair the hits with object points.

    The detector is resolved before any image is read, so an unimplemented
    pattern kind fails immediately. The preview (if any) is closed once the
    pass is over, whatever happens.

    Args:
        image_paths: Images to process, in order
        spec: Calibration target
        config: Sub-pixel refinement settings
        preview: Optional display collaborator
        preview_config: Overlay styling

    Returns:
        CollectionResult with one Correspondence per successful image and the
        file names of the images that failed
    """
    get_detector(spec.kind)
    config = config or DetectionConfig()
    preview = preview or NullPreview()

    correspondences = []
    failed = []
    image_size = None

    try:
        for path in image_paths:
            path = Path(path)
            source_id = path.name

            try:
                image = read_image(path)
            except ImageReadError as e:
                logger.warning("Skipping %s: %s", source_id, e)
                failed.append(source_id)
                continue

            if image_size is None:
                image_size = (image.shape[1], image.shape[0])

            points = detect_pattern_points(
                image,
                spec,
                config,
                preview=preview,
                label=source_id,
                preview_config=preview_config,
            )

            if points is None:
                logger.warning("Pattern not found in %s", source_id)
                failed.append(source_id)
                continue

            correspondences.append(
                Correspondence(
                    object_points=canonical_object_points(spec),
                    image_points=points,
                    source_id=source_id,
                )
            )
            logger.debug("Detected %d points in %s", len(points), source_id)
    finally:
        preview.close()

    logger.info(
        "Pattern found in %d image(s), missing in %d", len(correspondences), len(failed)
    )

    return CollectionResult(
        correspondences=tuple(correspondences),
        failed=tuple(failed),
        image_size=image_size,
    )
