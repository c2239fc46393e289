from __future__ import annotations

from visual_inspector.yolo.backend import BackendOptions, OnnxModelLoader
from visual_inspector.yolo.connection import (
    ConnectionState,
    ConnectionStatus,
    resolve_connection_status,
)
from visual_inspector.yolo.detector import Detector, Frame, postprocess
from visual_inspector.yolo.session import DetectionSession


__all__ = [
    "BackendOptions",
    "ConnectionState",
    "ConnectionStatus",
    "DetectionSession",
    "Detector",
    "Frame",
    "OnnxModelLoader",
    "postprocess",
    "resolve_connection_status",
]
