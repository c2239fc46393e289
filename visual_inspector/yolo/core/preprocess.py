from __future__ import annotations

import cv2
import numpy as np


def infer_input_size(input_shape: list[object] | None, default: int = 640) -> int:
    """Infer the square input resolution from an ONNX input shape."""

    if not input_shape or len(input_shape) < 4:
        return default

    # NCHW exports put the spatial dims last, NHWC exports in the middle
    for height, width in (input_shape[-2:], input_shape[1:3]):
        if isinstance(height, int) and isinstance(width, int) and height == width:
            return height

    return default


def preprocess(
    frame: np.ndarray,
    input_size: int = 640,
    layout: str = "nchw",
) -> np.ndarray:
    """Stretch an RGB frame to the square model input and scale to [0, 1]."""

    if frame.ndim != 3 or frame.shape[2] != 3:
        message = f"Expected an HxWx3 frame, got shape {frame.shape}"
        raise ValueError(message)

    resized = cv2.resize(
        frame, (input_size, input_size), interpolation=cv2.INTER_LINEAR
    )
    blob = resized.astype(np.float32) / 255.0

    if layout == "nchw":
        blob = blob.transpose(2, 0, 1)
    elif layout != "nhwc":
        message = f"Unknown input layout: {layout}"
        raise ValueError(message)

    return np.ascontiguousarray(blob[np.newaxis, ...])
