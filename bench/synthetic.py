"""Synthetic YOLO outputs for the benchmark demos."""

from __future__ import annotations

import numpy as np

from visual_inspector.pipeline.types import RawModelOutput
from visual_inspector.yolo.core.constants import GENERIC_OBJECTS_CONFIG


def make_output(num_boxes: int = 8400, seed: int = 0) -> RawModelOutput:
    """Return a features-first [1, 84, N] output with a few hundred confident boxes."""
    rng = np.random.default_rng(seed)
    features = 4 + GENERIC_OBJECTS_CONFIG.num_classes
    data = np.empty((features, num_boxes), dtype=np.float32)
    data[0:2] = rng.uniform(0, 640, size=(2, num_boxes))
    data[2:4] = rng.uniform(10, 200, size=(2, num_boxes))
    data[4:] = rng.uniform(0, 0.3, size=(features - 4, num_boxes))
    hot = rng.choice(num_boxes, size=300, replace=False)
    data[4 + rng.integers(0, features - 4, size=300), hot] = rng.uniform(0.5, 1.0, 300)
    return RawModelOutput(buffer=data.reshape(-1), shape=(1, features, num_boxes))
