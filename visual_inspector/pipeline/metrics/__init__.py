"""Performance metrics helpers for the pipeline."""

from __future__ import annotations

from visual_inspector.pipeline.metrics.performance import PerformanceTracker


__all__ = [
    "PerformanceTracker",
]
