"""Map candidate boxes from model space into destination space."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from visual_inspector.pipeline.types import (
    BoxFilter,
    Candidate,
    Detection,
    ModelConfig,
    PerformanceMode,
)


if TYPE_CHECKING:
    from collections.abc import Sequence


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


def passes_box_filter(width: float, height: float, box_filter: BoxFilter) -> bool:
    """Return True when a destination-space box is plausible for the model."""
    if width < box_filter.min_size or height < box_filter.min_size:
        return False
    if height <= 0.0:
        return False
    aspect = width / height
    return box_filter.min_aspect <= aspect <= box_filter.max_aspect


def normalize(
    candidate: Candidate,
    model_input_size: float,
    source_width: float,
    source_height: float,
    dest_width: float,
    dest_height: float,
    *,
    class_names: Sequence[str] = (),
    box_filter: BoxFilter | None = None,
) -> Detection | None:
    """Convert a model-space candidate into a clamped destination box.

    Returns ``None`` when the geometry is not finite or the box fails
    ``box_filter``.
    """
    if model_input_size <= 0 or source_width <= 0 or source_height <= 0:
        message = "Model input size and source dimensions must be positive"
        raise ValueError(message)
    if not all(
        math.isfinite(v)
        for v in (
            candidate.center_x,
            candidate.center_y,
            candidate.width,
            candidate.height,
        )
    ):
        return None

    sx = source_width / model_input_size
    sy = source_height / model_input_size
    cx = candidate.center_x * sx
    cy = candidate.center_y * sy
    half_w = abs(candidate.width * sx) / 2
    half_h = abs(candidate.height * sy) / 2

    dx = dest_width / source_width
    dy = dest_height / source_height
    x1 = _clamp((cx - half_w) * dx, dest_width)
    y1 = _clamp((cy - half_h) * dy, dest_height)
    x2 = _clamp((cx + half_w) * dx, dest_width)
    y2 = _clamp((cy + half_h) * dy, dest_height)

    if box_filter is not None and not passes_box_filter(
        2 * half_w * dx, 2 * half_h * dy, box_filter
    ):
        return None

    class_id = candidate.best_class
    class_name = (
        class_names[class_id] if 0 <= class_id < len(class_names) else str(class_id)
    )
    return Detection(
        x1=x1,
        y1=y1,
        x2=x2,
        y2=y2,
        confidence=_clamp(candidate.best_score, 1.0),
        class_id=class_id,
        class_name=class_name,
    )


def input_size_for_mode(config: ModelConfig, mode: PerformanceMode) -> int:
    """Pick the model input resolution for the current performance mode."""
    if mode is PerformanceMode.POWER_SAVE and config.reduced_input_size:
        return config.reduced_input_size
    return config.input_size
