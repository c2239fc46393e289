"""Rolling stage timings for the detection pipeline."""

from __future__ import annotations

import time

from visual_inspector.pipeline.types import Timings


class PerformanceTracker:
    """Track per-stage timings with moving averages."""

    def __init__(self, avg_frames: int = 30) -> None:
        """Initialize the tracker with a rolling window size."""
        self.avg_frames = avg_frames
        self.frame_times: list[float] = []
        self.preprocess_times: list[float] = []
        self.inference_times: list[float] = []
        self.postprocess_times: list[float] = []
        self.last_frame_time: float | None = None
        self.frame_count = 0
        self.inference_count = 0
        self.start_time = time.perf_counter()

    def _push(self, bucket: list[float], value: float) -> None:
        bucket.append(value)
        if len(bucket) > self.avg_frames:
            bucket.pop(0)

    def tick_frame(self) -> None:
        """Record an incoming frame for FPS estimation."""
        now = time.perf_counter()
        if self.last_frame_time is not None:
            self._push(self.frame_times, now - self.last_frame_time)
        self.last_frame_time = now
        self.frame_count += 1

    def add_timings(self, timings: Timings) -> None:
        """Record the stage durations of one completed inference."""
        self._push(self.preprocess_times, timings.preprocess)
        self._push(self.inference_times, timings.inference)
        self._push(self.postprocess_times, timings.postprocess)
        self.inference_count += 1

    @staticmethod
    def _mean(values: list[float]) -> float:
        return sum(values) / len(values) if values else 0.0

    @property
    def frame_fps(self) -> float:
        avg = self._mean(self.frame_times)
        return 1.0 / avg if avg > 0 else 0.0

    @property
    def inference_ms(self) -> float:
        return self._mean(self.inference_times)

    def average_timings(self) -> Timings:
        """Return the rolling mean of each stage."""
        return Timings(
            preprocess=self._mean(self.preprocess_times),
            inference=self._mean(self.inference_times),
            postprocess=self._mean(self.postprocess_times),
        )

    @property
    def skip_ratio(self) -> float:
        if self.frame_count == 0:
            return 0.0
        return 1.0 - min(1.0, self.inference_count / self.frame_count)

    @property
    def throughput_fps(self) -> float:
        elapsed = time.perf_counter() - self.start_time
        return self.inference_count / elapsed if elapsed > 0 else 0.0

    def reset(self) -> None:
        """Drop all samples and restart the throughput clock."""
        for bucket in (
            self.frame_times,
            self.preprocess_times,
            self.inference_times,
            self.postprocess_times,
        ):
            bucket.clear()
        self.last_frame_time = None
        self.frame_count = 0
        self.inference_count = 0
        self.start_time = time.perf_counter()
