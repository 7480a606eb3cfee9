"""
Pytest configuration and shared fixtures.

Synthetic views are built from a known camera so that detection and
calibration results can be checked against ground truth.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

from monocal.types import (
    CameraModel,
    Correspondence,
    PatternKind,
    PatternSpec,
    canonical_object_points,
)

IMAGE_SIZE = (1280, 720)  # (width, height)

# Rendering happens at SUPERSAMPLE x resolution, then is box-filtered down
SUPERSAMPLE = 4

# Pixels per square in the flat chessboard texture
TEXTURE_SQUARE = 64

# (rvec, (dx, dy, distance)) - board center placed at (dx, dy, distance)
# in camera coordinates, in pattern units
VIEWS = [
    ((0.30, 0.00, 0.00), (0.0, 0.0, 15.0)),
    ((-0.30, 0.00, 0.00), (0.5, -0.3, 15.5)),
    ((0.00, 0.30, 0.00), (-0.5, 0.3, 16.0)),
    ((0.00, -0.30, 0.00), (0.8, 0.0, 15.0)),
    ((0.20, 0.20, 0.05), (-0.8, 0.5, 16.5)),
    ((-0.20, 0.20, -0.05), (0.0, -0.6, 15.5)),
    ((0.20, -0.20, 0.10), (0.6, 0.6, 16.0)),
    ((-0.20, -0.20, -0.10), (-0.6, -0.5, 17.0)),
    ((0.35, 0.10, 0.15), (0.3, 0.2, 16.0)),
    ((-0.10, 0.35, -0.15), (-0.3, -0.2, 16.5)),
    ((0.10, -0.35, 0.20), (1.0, -0.4, 17.0)),
    ((-0.35, -0.10, -0.20), (-1.0, 0.4, 16.0)),
]


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def sample_camera_matrix():
    """Typical camera intrinsics matrix for a 1280x720 sensor."""
    return np.array([
        [800.0, 0.0, 640.0],
        [0.0, 810.0, 360.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_distortion():
    """Typical distortion coefficients (k1, k2, p1, p2, k3)."""
    return np.array([0.1, -0.25, 0.001, -0.001, 0.1], dtype=np.float64)


@pytest.fixture
def chessboard_spec():
    """9x6 inner-corner chessboard."""
    return PatternSpec(kind=PatternKind.CHESSBOARD, rows=6, cols=9)


def make_poses(
    spec: PatternSpec,
    depth_scale: float = 1.0,
) -> list[tuple[np.ndarray, np.ndarray]]:
    """
    Ground-truth poses for VIEWS, centred on the given pattern.

    depth_scale < 1 brings the board closer so it fills more of the frame.
    """
    center = np.array([
        (spec.cols - 1) * spec.square_size / 2,
        (spec.rows - 1) * spec.square_size / 2,
        0.0,
    ])
    poses = []
    for rvec, (dx, dy, distance) in VIEWS:
        rvec = np.array(rvec, dtype=np.float64)
        rotation = cv2.Rodrigues(rvec)[0]
        tvec = np.array([dx, dy, distance * depth_scale]) * spec.square_size - rotation @ center
        poses.append((rvec, tvec))
    return poses


@pytest.fixture
def synthetic_poses(chessboard_spec):
    return make_poses(chessboard_spec)


@pytest.fixture
def wide_poses(chessboard_spec):
    """Closer views, so distortion is well observed across the frame."""
    return make_poses(chessboard_spec, depth_scale=0.5)


def project(points: np.ndarray, rvec, tvec, matrix, distortion) -> np.ndarray:
    projected, _ = cv2.projectPoints(
        np.asarray(points, dtype=np.float64).reshape(-1, 3),
        np.asarray(rvec, dtype=np.float64),
        np.asarray(tvec, dtype=np.float64),
        matrix,
        distortion,
    )
    return projected.reshape(-1, 2)


def make_correspondences(spec, poses, matrix, distortion) -> list[Correspondence]:
    """Noise-free correspondences by forward projection."""
    correspondences = []
    for i, (rvec, tvec) in enumerate(poses):
        objp = canonical_object_points(spec)
        correspondences.append(
            Correspondence(
                object_points=objp,
                image_points=project(objp, rvec, tvec, matrix, distortion),
                source_id=f"view_{i:02d}.png",
            )
        )
    return correspondences


@pytest.fixture
def synthetic_correspondences(
    chessboard_spec, wide_poses, sample_camera_matrix, sample_distortion
):
    return make_correspondences(
        chessboard_spec, wide_poses, sample_camera_matrix, sample_distortion
    )


@pytest.fixture
def ground_truth_model(wide_poses, sample_camera_matrix, sample_distortion):
    """CameraModel holding the exact parameters the synthetic views came from."""
    return CameraModel(
        image_size=IMAGE_SIZE,
        camera_matrix=sample_camera_matrix,
        distortion=sample_distortion,
        rotation_vectors=np.array([r for r, _ in wide_poses]),
        translation_vectors=np.array([t for _, t in wide_poses]),
        source_ids=tuple(f"view_{i:02d}.png" for i in range(len(wide_poses))),
    )


# ============================================================================
# Image rendering
# ============================================================================


def _to_supersampled(points: np.ndarray) -> np.ndarray:
    """Pixel-center coordinates -> fixed-point coordinates on the large canvas."""
    big = (np.asarray(points, dtype=np.float64) + 0.5) * SUPERSAMPLE - 0.5
    return np.round(big * 16).astype(np.int32)  # shift=4


def _downsample(canvas: np.ndarray, image_size: tuple[int, int]) -> np.ndarray:
    gray = cv2.resize(canvas, image_size, interpolation=cv2.INTER_AREA)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


def render_chessboard(
    spec: PatternSpec,
    rvec,
    tvec,
    matrix: np.ndarray,
    image_size: tuple[int, int] = IMAGE_SIZE,
) -> np.ndarray:
    """
    Render a distortion-free chessboard with (rows+1) x (cols+1) squares on
    a white background.

    A fronto-parallel texture of the board is warped through the exact
    plane-to-image homography at SUPERSAMPLE x resolution, then box-filtered
    down, so corner positions carry no rasterization bias.
    """
    width, height = image_size

    # Texture: TEXTURE_SQUARE pixels per square, one white square of margin.
    # Pattern corner (0, 0) sits between texture pixels, at 2 * TEXTURE_SQUARE - 0.5
    tex = np.full(
        ((spec.rows + 3) * TEXTURE_SQUARE, (spec.cols + 3) * TEXTURE_SQUARE), 255, dtype=np.uint8
    )
    for r in range(-1, spec.rows):
        for c in range(-1, spec.cols):
            if (r + c) % 2 == 0:
                y0, x0 = (r + 2) * TEXTURE_SQUARE, (c + 2) * TEXTURE_SQUARE
                tex[y0 : y0 + TEXTURE_SQUARE, x0 : x0 + TEXTURE_SQUARE] = 0

    scale = TEXTURE_SQUARE / spec.square_size
    offset = 2 * TEXTURE_SQUARE - 0.5
    board_to_texture = np.array([
        [scale, 0.0, offset],
        [0.0, scale, offset],
        [0.0, 0.0, 1.0],
    ])

    # Plane z = 0 to image pixels: K [r1 r2 t]
    rotation = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64))[0]
    board_to_image = matrix @ np.column_stack(
        [rotation[:, 0], rotation[:, 1], np.asarray(tvec, dtype=np.float64)]
    )

    # Image pixel x maps to SUPERSAMPLE * x + (SUPERSAMPLE - 1) / 2 on the large canvas
    half = (SUPERSAMPLE - 1) / 2
    image_to_canvas = np.array([
        [SUPERSAMPLE, 0.0, half],
        [0.0, SUPERSAMPLE, half],
        [0.0, 0.0, 1.0],
    ])

    texture_to_canvas = image_to_canvas @ board_to_image @ np.linalg.inv(board_to_texture)
    canvas = cv2.warpPerspective(
        tex,
        texture_to_canvas,
        (width * SUPERSAMPLE, height * SUPERSAMPLE),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=255,
    )

    return _downsample(canvas, image_size)


def render_circle_grid(
    spec: PatternSpec,
    origin: tuple[float, float] = (120.0, 100.0),
    spacing: float = 60.0,
    radius: float = 15.0,
    image_size: tuple[int, int] = (640, 480),
) -> tuple[np.ndarray, np.ndarray]:
    """
    Render a fronto-parallel grid of filled black circles.

    Returns:
        (BGR image, (rows * cols, 2) true centers)
    """
    width, height = image_size
    canvas = np.full((height * SUPERSAMPLE, width * SUPERSAMPLE), 255, dtype=np.uint8)

    centers = np.array([
        [origin[0] + j * spacing, origin[1] + i * spacing]
        for i in range(spec.rows)
        for j in range(spec.cols)
    ], dtype=np.float64)

    for center in _to_supersampled(centers):
        cv2.circle(
            canvas,
            (int(center[0]), int(center[1])),
            int(round(radius * SUPERSAMPLE * 16)),
            0,
            -1,
            cv2.LINE_8,
            4,
        )

    return _downsample(canvas, image_size), centers


@pytest.fixture
def rendered_views(chessboard_spec, synthetic_poses):
    """Twelve distortion-free chessboard images with their camera matrix."""
    matrix = np.array([
        [800.0, 0.0, 640.0],
        [0.0, 800.0, 360.0],
        [0.0, 0.0, 1.0],
    ])
    images = [
        render_chessboard(chessboard_spec, rvec, tvec, matrix)
        for rvec, tvec in synthetic_poses
    ]
    return images, matrix


@pytest.fixture
def calibration_image_dir(temp_dir, rendered_views):
    """
    Directory with twelve rendered board images plus one blank image.
    """
    images, _ = rendered_views
    image_dir = temp_dir / "img"
    image_dir.mkdir()

    for i, image in enumerate(images):
        cv2.imwrite(str(image_dir / f"view_{i:02d}.png"), image)

    blank = np.full((IMAGE_SIZE[1], IMAGE_SIZE[0], 3), 255, dtype=np.uint8)
    cv2.imwrite(str(image_dir / "blank.png"), blank)

    return image_dir


def ordered_distances(detected: np.ndarray, expected: np.ndarray) -> np.ndarray:
    """
    Index-wise distance between detected and expected points.

    The detected list may also run in exactly reversed order, which is the
    same row-major grid seen with the board turned 180 degrees. Any other
    ordering gives large distances.
    """
    forward = np.linalg.norm(detected - expected, axis=1)
    backward = np.linalg.norm(detected[::-1] - expected, axis=1)
    return forward if forward.max() <= backward.max() else backward


def nearest_distances(detected: np.ndarray, expected: np.ndarray) -> np.ndarray:
    """
    For each expected point, distance to the closest detected point.

    Detection may report a symmetric grid starting from either end, so
    points are compared as sets.
    """
    diff = expected[:, None, :] - detected[None, :, :]
    return np.sqrt(np.sum(diff**2, axis=2)).min(axis=1)
