"""
Optional on-screen preview of pattern detections.

The detector only ever talks to a Preview it was handed. NullPreview is the
default so headless runs and tests never open a window.
"""

from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np

from .config import PreviewConfig
from .types import PatternSpec


class Preview(Protocol):
    def show(self, image: np.ndarray) -> None: ...

    def close(self) -> None: ...


class NullPreview:
    """Preview that discards every frame."""

    def show(self, image: np.ndarray) -> None:
        pass

    def close(self) -> None:
        pass


class OpenCVPreview:
    """
    Single highgui window, created lazily on the first frame.

    Each frame is held for config.wait_ms. close() tears the window down and
    may be called more than once.
    """

    def __init__(self, config: PreviewConfig | None = None):
        self.config = config or PreviewConfig()
        self._open = False

    def show(self, image: np.ndarray) -> None:
        if not self._open:
            cv2.namedWindow(self.config.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.config.window_name, *self.config.window_size)
            self._open = True
        cv2.imshow(self.config.window_name, image)
        cv2.waitKey(self.config.wait_ms)

    def close(self) -> None:
        if self._open:
            cv2.destroyWindow(self.config.window_name)
            self._open = False

    def __enter__(self) -> OpenCVPreview:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def create_preview(config: PreviewConfig) -> Preview:
    """Pick the preview implementation the configuration asks for."""
    if config.enabled:
        return OpenCVPreview(config)
    return NullPreview()


def draw_detection(
    image: np.ndarray,
    spec: PatternSpec,
    points: np.ndarray,
    label: str | None = None,
    config: PreviewConfig | None = None,
) -> np.ndarray:
    """
    Draw detected pattern points (and an optional label) on a copy of image.

    Args:
        image: BGR or grayscale image
        spec: Pattern the points belong to
        points: (n, 2) detected points
        label: Text drawn at config.text_origin, usually the file name
        config: Overlay styling

    Returns:
        BGR image with the overlay
    """
    config = config or PreviewConfig()

    if image.ndim == 2:
        canvas = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        canvas = image.copy()

    corners = np.asarray(points, dtype=np.float32).reshape(-1, 1, 2)
    cv2.drawChessboardCorners(canvas, spec.pattern_size, corners, True)

    if label:
        cv2.putText(
            canvas,
            label,
            config.text_origin,
            cv2.FONT_HERSHEY_SIMPLEX,
            config.font_scale,
            config.text_color,
            config.text_thickness,
            cv2.LINE_AA,
        )

    return canvas
