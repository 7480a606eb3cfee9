"""Custom exception classes for monocal."""

from __future__ import annotations


class MonocalError(Exception):
    """Base exception for all monocal errors."""

    pass


class ConfigError(MonocalError):
    """Raised when a configuration file is missing values or holds invalid ones."""

    pass


class ImageReadError(MonocalError):
    """Raised when an input directory or image cannot be read."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class InsufficientDataError(MonocalError, ValueError):
    """Raised when too few views are available to solve for a camera model."""

    def __init__(self, message: str, view_count: int = 0, required: int = 0):
        self.view_count = view_count
        self.required = required
        super().__init__(message)


class DegenerateProjectionError(MonocalError):
    """Raised when a solved pose cannot be projected to finite image points."""

    def __init__(self, message: str, view_index: int | None = None):
        self.view_index = view_index
        super().__init__(message)


class UnsupportedPatternError(MonocalError, NotImplementedError):
    """Raised for pattern kinds that are recognised but not implemented."""

    pass
