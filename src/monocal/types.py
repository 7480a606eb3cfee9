"""
Core data structures for monocal.

All types are frozen dataclasses for immutability.
Logic is in separate pure functions - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np


# ============================================================================
# Calibration Pattern
# ============================================================================


class PatternKind(str, Enum):
    """Calibration target families selectable at run time."""

    CHESSBOARD = "chessboard"
    SYMMETRIC_CIRCLE_GRID = "symmetric"
    ASYMMETRIC_CIRCLE_GRID = "asymmetric"
    CHARUCO = "charuco"

    @classmethod
    def parse(cls, value: str | PatternKind) -> PatternKind:
        """
        Parse a pattern name case-insensitively.

        Raises:
            ValueError: If the name is not a known pattern
        """
        if isinstance(value, PatternKind):
            return value

        name = str(value).strip().lower()
        name = _PATTERN_ALIASES.get(name, name)
        for kind in cls:
            if kind.value == name:
                return kind

        allowed = ", ".join(kind.value for kind in cls)
        raise ValueError(
            f"Invalid calibration pattern: '{value}'. Allowed values are: {allowed}."
        )


_PATTERN_ALIASES = {
    "chess": "chessboard",
    "symmetric_circle_grid": "symmetric",
    "asymmetric_circle_grid": "asymmetric",
}


@dataclass(frozen=True)  # No slots - need properties
class PatternSpec:
    """
    Description of a planar calibration target.

    rows and cols count interior points (chessboard inner corners or circle
    centers), not squares. One grid cell is square_size units wide.
    """

    kind: PatternKind
    rows: int
    cols: int
    square_size: float = 1.0

    def __post_init__(self):
        if self.rows < 2 or self.cols < 2:
            raise ValueError(
                f"Pattern needs at least 2x2 points, got rows={self.rows} cols={self.cols}"
            )
        if self.square_size <= 0:
            raise ValueError(f"square_size must be positive, got {self.square_size}")

    @property
    def pattern_size(self) -> tuple[int, int]:
        """(cols, rows) as OpenCV expects it."""
        return (self.cols, self.rows)

    @property
    def point_count(self) -> int:
        return self.rows * self.cols


# ============================================================================
# Correspondences
# ============================================================================


@dataclass(frozen=True, slots=True)
class Correspondence:
    """
    One image's contribution to calibration.

    object_points is a private copy of the canonical pattern points.
    """

    object_points: np.ndarray  # (n, 3) pattern-frame coordinates
    image_points: np.ndarray  # (n, 2) sub-pixel image coordinates (x, y)
    source_id: str  # originating image, for diagnostics

    def __post_init__(self):
        if len(self.object_points) != len(self.image_points):
            raise ValueError(
                f"{self.source_id}: {len(self.object_points)} object points "
                f"but {len(self.image_points)} image points"
            )

    @property
    def point_count(self) -> int:
        return len(self.image_points)


@dataclass(frozen=True, slots=True)
class CollectionResult:
    """
    Output of one pass of the correspondence collector.
    """

    correspondences: tuple[Correspondence, ...]
    failed: tuple[str, ...]  # image identifiers where detection failed
    image_size: tuple[int, int] | None = None  # (width, height) of first readable image


# ============================================================================
# Calibration Results
# ============================================================================


@dataclass(frozen=True)  # No slots - need properties
class CameraModel:
    """
    Shared intrinsics plus one pose per consumed view.

    distortion is ordered (k1, k2, p1, p2, k3).
    """

    image_size: tuple[int, int]  # (width, height)
    camera_matrix: np.ndarray  # 3x3
    distortion: np.ndarray  # (5,)
    rotation_vectors: np.ndarray  # (m, 3) Rodrigues vectors
    translation_vectors: np.ndarray  # (m, 3)
    rms_error: float = 0.0  # RMS reprojection error reported by the solver
    source_ids: tuple[str, ...] = ()

    def __post_init__(self):
        if self.camera_matrix.shape != (3, 3):
            raise ValueError(f"camera_matrix must be 3x3, got {self.camera_matrix.shape}")
        if len(self.rotation_vectors) != len(self.translation_vectors):
            raise ValueError(
                f"{len(self.rotation_vectors)} rotations but "
                f"{len(self.translation_vectors)} translations"
            )
        if self.source_ids and len(self.source_ids) != len(self.rotation_vectors):
            raise ValueError(
                f"{len(self.source_ids)} source ids but {len(self.rotation_vectors)} poses"
            )

    @property
    def fx(self) -> float:
        return float(self.camera_matrix[0, 0])

    @property
    def fy(self) -> float:
        return float(self.camera_matrix[1, 1])

    @property
    def cx(self) -> float:
        return float(self.camera_matrix[0, 2])

    @property
    def cy(self) -> float:
        return float(self.camera_matrix[1, 2])

    @property
    def view_count(self) -> int:
        return len(self.rotation_vectors)


@dataclass(frozen=True, slots=True)
class ErrorReport:
    """
    Per-view RMS reprojection error and its mean.

    Degenerate views hold NaN and are left out of mean_error.
    """

    per_image_error: np.ndarray  # (m,) pixels
    mean_error: float
    degenerate_views: tuple[int, ...] = ()


# ============================================================================
# Pure functions for computed properties
# ============================================================================


def canonical_object_points(spec: PatternSpec) -> np.ndarray:
    """
    Build the pattern-frame coordinates of every pattern point.

    Points are (j, i, 0) * square_size, row-major over i, which matches the
    order OpenCV reports detected corners in. A new array is returned on
    every call.

    Returns:
        (rows * cols, 3) float32 array
    """
    objp = np.zeros((spec.rows * spec.cols, 3), dtype=np.float32)
    objp[:, :2] = np.mgrid[0 : spec.cols, 0 : spec.rows].T.reshape(-1, 2)
    objp[:, :2] *= spec.square_size
    return objp
