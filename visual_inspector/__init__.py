"""Visual Inspector: adaptive real-time YOLO inspection."""

from visual_inspector.pipeline.errors import (
    BackendExhausted,
    BackendFailure,
    InspectorError,
    ModelLoadFailure,
    ShapeError,
)
from visual_inspector.pipeline.types import (
    Detection,
    DetectionResult,
    ModelConfig,
    PerformanceMode,
    PerformanceStats,
)
from visual_inspector.yolo.core.constants import get_preset
from visual_inspector.yolo.detector import Detector, Frame
from visual_inspector.yolo.session import DetectionSession


__all__ = [
    "BackendExhausted",
    "BackendFailure",
    "Detection",
    "DetectionResult",
    "DetectionSession",
    "Detector",
    "Frame",
    "InspectorError",
    "ModelConfig",
    "ModelLoadFailure",
    "PerformanceMode",
    "PerformanceStats",
    "ShapeError",
    "get_preset",
]
