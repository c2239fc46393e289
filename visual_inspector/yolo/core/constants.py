"""Model presets for the hardware inspection detectors.

Thresholds and box limits were tuned empirically for each detector and are
kept per model; recalibrate them against the target cameras before reuse.
"""

from __future__ import annotations

from visual_inspector.pipeline.types import BoxFilter, ModelConfig


COCO_CLASS_NAMES = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train",
    "truck", "boat", "traffic light", "fire hydrant", "stop sign",
    "parking meter", "bench", "bird", "cat", "dog", "horse", "sheep", "cow",
    "elephant", "bear", "zebra", "giraffe", "backpack", "umbrella", "handbag",
    "tie", "suitcase", "frisbee", "skis", "snowboard", "sports ball", "kite",
    "baseball bat", "baseball glove", "skateboard", "surfboard",
    "tennis racket", "bottle", "wine glass", "cup", "fork", "knife", "spoon",
    "bowl", "banana", "apple", "sandwich", "orange", "broccoli", "carrot",
    "hot dog", "pizza", "donut", "cake", "chair", "couch", "potted plant",
    "bed", "dining table", "toilet", "tv", "laptop", "mouse", "remote",
    "keyboard", "cell phone", "microwave", "oven", "toaster", "sink",
    "refrigerator", "book", "clock", "vase", "scissors", "teddy bear",
    "hair drier", "toothbrush",
)  # fmt: skip

CONNECTED_LABEL = "connected"
NOT_CONNECTED_LABEL = "not_connected"

ESP32_CONFIG = ModelConfig(
    name="esp32",
    class_names=("ESP32",),
    input_size=640,
    reduced_input_size=416,
    pre_threshold=0.25,
    final_threshold=0.45,
    iou_threshold=0.4,
    box_filter=BoxFilter(min_size=30.0, min_aspect=0.3, max_aspect=3.0),
    sources=("models/esp32.onnx",),
)

MOTOR_WIRE_CONFIG = ModelConfig(
    name="motor_wire",
    class_names=(CONNECTED_LABEL, NOT_CONNECTED_LABEL),
    input_size=416,
    pre_threshold=0.5,
    final_threshold=0.5,
    iou_threshold=0.4,
    box_filter=BoxFilter(min_size=20.0, min_aspect=0.1, max_aspect=10.0),
    sources=("models/motor_wire.onnx",),
    tie_class=1,
)

GENERIC_OBJECTS_CONFIG = ModelConfig(
    name="generic",
    class_names=COCO_CLASS_NAMES,
    input_size=640,
    reduced_input_size=320,
    pre_threshold=0.3,
    final_threshold=0.35,
    iou_threshold=0.3,
    box_filter=BoxFilter(min_size=20.0, min_aspect=0.1, max_aspect=10.0),
    sources=("models/yolov8n.onnx",),
)

PRESETS: dict[str, ModelConfig] = {
    config.name: config
    for config in (ESP32_CONFIG, MOTOR_WIRE_CONFIG, GENERIC_OBJECTS_CONFIG)
}


def get_preset(name: str) -> ModelConfig:
    """Return the preset registered under ``name``."""
    try:
        return PRESETS[name]
    except KeyError:
        known = ", ".join(sorted(PRESETS))
        message = f"Unknown model preset {name!r}; known presets: {known}"
        raise KeyError(message) from None
