"""Decode raw YOLO output tensors into candidate boxes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from loguru import logger

from visual_inspector.pipeline.errors import ShapeError
from visual_inspector.pipeline.types import Candidate


if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

BOX_PARAMS = 4

FEATURES_FIRST = "features_first"
BOXES_FIRST = "boxes_first"


def detect_layout(shape: Sequence[int], num_classes: int) -> tuple[str, int]:
    """Return the tensor layout and the number of boxes for ``shape``.

    A ``[1, F, N]`` tensor is features-first and a ``[1, N, F]`` tensor is
    boxes-first, where ``F = 4 + num_classes``. When both axes equal ``F``
    the features-first reading wins.
    """
    dims = tuple(int(d) for d in shape)
    if len(dims) != 3:
        message = f"Expected a rank-3 output tensor, got shape {list(dims)}"
        raise ShapeError(message)
    if dims[0] != 1:
        message = f"Expected batch size 1, got shape {list(dims)}"
        raise ShapeError(message)
    if num_classes < 1:
        message = "At least one class name is required to decode boxes"
        raise ShapeError(message)

    features = BOX_PARAMS + num_classes
    if dims[1] == features:
        return FEATURES_FIRST, dims[2]
    if dims[2] == features:
        return BOXES_FIRST, dims[1]
    message = (
        f"Output shape {list(dims)} has no feature axis of size {features} "
        f"(4 box params + {num_classes} classes)"
    )
    raise ShapeError(message)


def _as_rows(buffer: np.ndarray, shape: Sequence[int], num_classes: int) -> np.ndarray:
    layout, num_boxes = detect_layout(shape, num_classes)
    data = np.asarray(buffer, dtype=np.float32).reshape(-1)
    features = BOX_PARAMS + num_classes
    expected = features * num_boxes
    if data.size != expected:
        message = (
            f"Buffer holds {data.size} values but shape {list(shape)} "
            f"needs {expected}"
        )
        raise ShapeError(message)
    if layout == FEATURES_FIRST:
        return data.reshape(features, num_boxes).T
    return data.reshape(num_boxes, features)


def _thresholds_for(
    confidence_threshold: float | Sequence[float],
    best_class: np.ndarray,
    num_classes: int,
) -> np.ndarray | float:
    if np.isscalar(confidence_threshold):
        return float(confidence_threshold)
    per_class = np.asarray(confidence_threshold, dtype=np.float32)
    if per_class.shape != (num_classes,):
        message = (
            f"Expected {num_classes} per-class thresholds, got {per_class.size}"
        )
        raise ValueError(message)
    return per_class[best_class]


def decode(
    buffer: np.ndarray | Sequence[float],
    shape: Sequence[int],
    class_names: Sequence[str],
    confidence_threshold: float | Sequence[float],
    *,
    tie_class: int | None = None,
) -> Iterator[Candidate]:
    """Return a one-shot iterator over candidates above the threshold.

    ``confidence_threshold`` is either one value for every class or one value
    per class. An exact score tie goes to ``tie_class`` when it is given and
    to the lowest class index otherwise. Shape problems raise
    :class:`ShapeError` immediately; the candidates themselves are produced
    lazily.
    """
    num_classes = len(class_names)
    rows = _as_rows(np.asarray(buffer), shape, num_classes)
    if rows.size == 0:
        return iter(())

    scores = rows[:, BOX_PARAMS:]
    if num_classes == 1:
        best_class = np.zeros(len(rows), dtype=np.int64)
        best_score = scores[:, 0]
    else:
        best_class = np.argmax(scores, axis=1)
        best_score = scores[np.arange(len(rows)), best_class]
        if tie_class is not None and 0 <= tie_class < num_classes:
            best_class = np.where(
                scores[:, tie_class] >= best_score, tie_class, best_class
            )

    threshold = _thresholds_for(confidence_threshold, best_class, num_classes)
    keep = np.flatnonzero(best_score > threshold)
    logger.trace("Decoder kept {}/{} boxes", keep.size, len(rows))
    return _iter_candidates(rows, scores, best_class, best_score, keep)


def _iter_candidates(
    rows: np.ndarray,
    scores: np.ndarray,
    best_class: np.ndarray,
    best_score: np.ndarray,
    keep: np.ndarray,
) -> Iterator[Candidate]:
    for idx in keep:
        cx, cy, w, h = rows[idx, :BOX_PARAMS]
        yield Candidate(
            center_x=float(cx),
            center_y=float(cy),
            width=float(w),
            height=float(h),
            class_scores=tuple(float(s) for s in scores[idx]),
            best_class=int(best_class[idx]),
            best_score=float(best_score[idx]),
        )
