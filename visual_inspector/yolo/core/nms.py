"""Greedy non-maximum suppression over destination-space detections."""

from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Iterable

    from visual_inspector.pipeline.types import Detection


def iou(a: Detection, b: Detection) -> float:
    """Intersection-over-union of two boxes; 0.0 when they do not overlap."""
    ix1 = max(a.x1, b.x1)
    iy1 = max(a.y1, b.y1)
    ix2 = min(a.x2, b.x2)
    iy2 = min(a.y2, b.y2)
    if ix2 <= ix1 or iy2 <= iy1:
        return 0.0

    intersection = (ix2 - ix1) * (iy2 - iy1)
    union = a.area + b.area - intersection
    if union <= 0.0:
        return 0.0
    return intersection / union


def suppress(
    detections: Iterable[Detection],
    iou_threshold: float,
    *,
    per_class: bool = False,
) -> list[Detection]:
    """Keep the highest-confidence box of every overlapping cluster.

    Equal confidences keep their input order. With ``per_class`` only boxes
    of the same class suppress each other.
    """
    # sorted() is stable, so ties stay in input order
    remaining = sorted(detections, key=lambda det: det.confidence, reverse=True)
    kept: list[Detection] = []
    while remaining:
        best = remaining.pop(0)
        kept.append(best)
        remaining = [
            det
            for det in remaining
            if (per_class and det.class_id != best.class_id)
            or iou(best, det) <= iou_threshold
        ]
    return kept
