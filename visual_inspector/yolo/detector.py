"""Per-model detection pipeline: preprocess, infer, decode, rescale, suppress."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import numpy as np
from loguru import logger

from visual_inspector.pipeline.buffers import BufferPool
from visual_inspector.pipeline.errors import BackendFailure, ShapeError
from visual_inspector.pipeline.monitoring.health import is_backend_failure
from visual_inspector.pipeline.types import (
    Detection,
    DetectionResult,
    ExecutionBackend,
    PerformanceMode,
    PerformanceStats,
    Timings,
)
from visual_inspector.yolo.core.decode import decode
from visual_inspector.yolo.core.geometry import input_size_for_mode, normalize
from visual_inspector.yolo.core.nms import suppress
from visual_inspector.yolo.core.preprocess import preprocess


if TYPE_CHECKING:
    from collections.abc import Sequence

    from visual_inspector.pipeline.types import ModelConfig, RawModelOutput
    from visual_inspector.yolo.backend import ModelHandle


class ModelLoaderProtocol(Protocol):
    async def load(
        self, sources: Sequence[str], backend: ExecutionBackend
    ) -> ModelHandle: ...


@dataclass(frozen=True)
class Frame:
    """Rasterized RGB frame with its source resolution."""

    pixels: np.ndarray
    width: int
    height: int

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> Frame:
        height, width = pixels.shape[:2]
        return cls(pixels=pixels, width=int(width), height=int(height))


def _ms_since(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def postprocess(
    output: RawModelOutput,
    config: ModelConfig,
    model_input_size: int,
    source_size: tuple[int, int],
    dest_size: tuple[int, int],
) -> list[Detection]:
    """Turn one raw output tensor into the final detection list."""
    source_width, source_height = source_size
    dest_width, dest_height = dest_size
    detections: list[Detection] = []
    for candidate in decode(
        output.buffer,
        output.shape,
        config.class_names,
        config.pre_threshold,
        tie_class=config.tie_class,
    ):
        detection = normalize(
            candidate,
            model_input_size,
            source_width,
            source_height,
            dest_width,
            dest_height,
            class_names=config.class_names,
            box_filter=config.box_filter,
        )
        if detection is None or detection.confidence <= config.final_threshold:
            continue
        detections.append(detection)

    kept = suppress(detections, config.iou_threshold)
    return kept[: config.max_detections]


class Detector:
    """Run one model type end to end and own its resources.

    ``lock`` serialises inference against disposal so the health monitor
    never frees a model that is mid-predict.
    """

    def __init__(
        self,
        config: ModelConfig,
        loader: ModelLoaderProtocol,
        *,
        backend: ExecutionBackend = ExecutionBackend.ACCELERATED,
    ) -> None:
        self.config = config
        self.loader = loader
        self.backend = backend
        self.model: ModelHandle | None = None
        self.lock = asyncio.Lock()
        self.buffers = BufferPool()
        self.last_timings = Timings()

    @property
    def is_ready(self) -> bool:
        return self.model is not None

    async def load(self, backend: ExecutionBackend | None = None) -> None:
        """Load the model, falling back to CPU when no accelerator is usable."""
        target = backend or self.backend
        try:
            self.model = await self.loader.load(self.config.sources, target)
        except BackendFailure as exc:
            if target is ExecutionBackend.FALLBACK:
                raise
            logger.warning("Accelerated backend unavailable ({}); using CPU", exc)
            target = ExecutionBackend.FALLBACK
            self.model = await self.loader.load(self.config.sources, target)
        self.backend = target

    async def reinitialize(self, backend: ExecutionBackend) -> None:
        self.model = await self.loader.load(self.config.sources, backend)
        self.backend = backend

    def _input_size(self, mode: PerformanceMode) -> int:
        fixed = getattr(self.model, "input_size", None)
        if fixed:
            return int(fixed)
        return input_size_for_mode(self.config, mode)

    async def detect(
        self,
        frame: Frame,
        dest_width: int,
        dest_height: int,
        *,
        mode: PerformanceMode = PerformanceMode.HIGH,
    ) -> DetectionResult:
        """Detect objects in ``frame`` and return boxes in destination space.

        Returns an empty result when no model is loaded or the output cannot
        be decoded. Raises :class:`BackendFailure` on accelerator loss.
        """
        if self.model is None:
            logger.debug("Detect called before {} model is ready", self.config.name)
            return DetectionResult.empty()

        timings = Timings()
        start = time.perf_counter()
        input_size = self._input_size(mode)
        blob = self.buffers.register(
            preprocess(frame.pixels, input_size, self.config.input_layout)
        )
        timings.preprocess = _ms_since(start)

        try:
            async with self.lock:
                if self.model is None:
                    return DetectionResult.empty()
                start = time.perf_counter()
                try:
                    output = await self.model.predict(blob)
                except BackendFailure:
                    raise
                except Exception as exc:
                    if is_backend_failure(exc):
                        message = f"{self.config.name} inference lost its backend: {exc}"
                        raise BackendFailure(message) from exc
                    logger.warning("{} inference failed: {}", self.config.name, exc)
                    return DetectionResult.empty()
                timings.inference = _ms_since(start)
        finally:
            self.buffers.release(blob)

        start = time.perf_counter()
        try:
            detections = postprocess(
                output,
                self.config,
                input_size,
                (frame.width, frame.height),
                (dest_width, dest_height),
            )
        except ShapeError as exc:
            logger.error("{} output rejected: {}", self.config.name, exc)
            return DetectionResult.empty()
        timings.postprocess = _ms_since(start)

        self.last_timings = timings
        confidence = (
            sum(d.confidence for d in detections) / len(detections)
            if detections
            else 0.0
        )
        logger.debug(
            "{}: {} detections | pre {:.1f}ms | infer {:.1f}ms | post {:.1f}ms",
            self.config.name,
            len(detections),
            timings.preprocess,
            timings.inference,
            timings.postprocess,
        )
        return DetectionResult(
            detections=detections, confidence=confidence, timings=timings
        )

    def dispose_models(self) -> None:
        if self.model is not None:
            self.model.dispose()
            self.model = None

    def release_buffers(self) -> int:
        return self.buffers.release_all()

    def get_performance_stats(self) -> PerformanceStats:
        return PerformanceStats(
            memory_mb=self.buffers.memory_mb,
            tensor_count=self.buffers.tensor_count,
            backend=self.backend,
            inference_ms=self.last_timings.inference,
        )

    async def dispose(self) -> None:
        """Release the model and every transient buffer."""
        async with self.lock:
            self.dispose_models()
            released = self.release_buffers()
        logger.info("{} detector disposed ({} buffers)", self.config.name, released)
