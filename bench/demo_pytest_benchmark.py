"""Pytest-benchmark demo for the detection postprocess chain."""

from __future__ import annotations

from typing import TYPE_CHECKING

from synthetic import make_output
from visual_inspector.yolo.core.constants import GENERIC_OBJECTS_CONFIG
from visual_inspector.yolo.core.decode import decode
from visual_inspector.yolo.detector import postprocess


if TYPE_CHECKING:
    from collections.abc import Callable


def test_postprocess_benchmark(
    benchmark: Callable[..., object],
) -> None:
    """Benchmark decode, rescale and suppression on an 8400-box output."""
    output = make_output()
    benchmark(
        postprocess,
        output,
        GENERIC_OBJECTS_CONFIG,
        640,
        (1280, 720),
        (1280, 720),
    )


def test_decode_benchmark(
    benchmark: Callable[..., object],
) -> None:
    """Benchmark candidate extraction alone."""
    output = make_output()

    def run() -> int:
        candidates = decode(
            output.buffer,
            output.shape,
            GENERIC_OBJECTS_CONFIG.class_names,
            GENERIC_OBJECTS_CONFIG.pre_threshold,
        )
        return sum(1 for _ in candidates)

    benchmark(run)
