"""Core YOLO utilities (presets, preprocess, decode, geometry, suppression)."""

from __future__ import annotations

from visual_inspector.yolo.core.constants import (
    COCO_CLASS_NAMES,
    ESP32_CONFIG,
    GENERIC_OBJECTS_CONFIG,
    MOTOR_WIRE_CONFIG,
    PRESETS,
    get_preset,
)
from visual_inspector.yolo.core.decode import decode, detect_layout
from visual_inspector.yolo.core.geometry import (
    input_size_for_mode,
    normalize,
    passes_box_filter,
)
from visual_inspector.yolo.core.nms import iou, suppress
from visual_inspector.yolo.core.preprocess import infer_input_size, preprocess


__all__ = [
    "COCO_CLASS_NAMES",
    "ESP32_CONFIG",
    "GENERIC_OBJECTS_CONFIG",
    "MOTOR_WIRE_CONFIG",
    "PRESETS",
    "decode",
    "detect_layout",
    "get_preset",
    "infer_input_size",
    "input_size_for_mode",
    "iou",
    "normalize",
    "passes_box_filter",
    "preprocess",
    "suppress",
]
