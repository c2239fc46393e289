"""Exception taxonomy for the detection core."""

from __future__ import annotations


class InspectorError(RuntimeError):
    """Base class for detection core errors."""


class ShapeError(InspectorError, ValueError):
    """Raised when a model output tensor has an unrecognised shape."""


class BackendFailure(InspectorError):
    """Raised when the execution backend loses its context or device."""


class BackendExhausted(BackendFailure):
    """Raised when recovery failed on every execution backend."""


class ModelLoadFailure(InspectorError):
    """Raised when no model source could be loaded."""
