"""Shared fakes for detector, loader and session tests."""

from __future__ import annotations

import numpy as np
import pytest

from visual_inspector.pipeline.errors import BackendFailure
from visual_inspector.pipeline.types import (
    DeviceProfile,
    ExecutionBackend,
    ModelConfig,
    RawModelOutput,
)


def boxes_first(rows: list[list[float]]) -> np.ndarray:
    """Build a [1, N, F] tensor from per-box rows of cx, cy, w, h, scores..."""
    return np.asarray([rows], dtype=np.float32)


def features_first(rows: list[list[float]]) -> np.ndarray:
    """Build the [1, F, N] tensor holding the same boxes as ``boxes_first``."""
    return np.ascontiguousarray(boxes_first(rows).transpose(0, 2, 1))


class FakeModel:
    """Model handle returning a fixed output, or raising a queued error."""

    def __init__(self, output: np.ndarray, input_size: int | None = 640) -> None:
        self.output = output
        self.input_size = input_size
        self.errors: list[BaseException] = []
        self.calls = 0
        self.disposed = False

    async def predict(self, input_buffer: np.ndarray) -> RawModelOutput:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return RawModelOutput.from_array(self.output)

    def dispose(self) -> None:
        self.disposed = True


class FakeLoader:
    """Loader that hands out ``FakeModel`` instances per backend."""

    def __init__(
        self,
        output: np.ndarray,
        *,
        accelerated_available: bool = True,
        input_size: int | None = 640,
    ) -> None:
        self.output = output
        self.input_size = input_size
        self.accelerated_available = accelerated_available
        self.fail_backends: set[ExecutionBackend] = set()
        self.loads: list[ExecutionBackend] = []
        self.models: list[FakeModel] = []

    async def load(self, sources, backend: ExecutionBackend) -> FakeModel:
        self.loads.append(backend)
        if backend is ExecutionBackend.ACCELERATED and not self.accelerated_available:
            message = "No accelerated execution provider available"
            raise BackendFailure(message)
        if backend in self.fail_backends:
            message = f"cannot load on {backend.value}"
            raise RuntimeError(message)
        model = FakeModel(self.output, self.input_size)
        self.models.append(model)
        return model


@pytest.fixture
def standard_profile() -> DeviceProfile:
    return DeviceProfile(
        max_memory_mb=1024.0,
        max_fps=30.0,
        min_inference_interval_ms=100.0,
        is_constrained=False,
    )


@pytest.fixture
def constrained_profile() -> DeviceProfile:
    return DeviceProfile(
        max_memory_mb=256.0,
        max_fps=15.0,
        min_inference_interval_ms=500.0,
        is_constrained=True,
    )


@pytest.fixture
def widget_config() -> ModelConfig:
    return ModelConfig(
        name="widget",
        class_names=("widget", "gadget"),
        input_size=640,
        pre_threshold=0.25,
        final_threshold=0.3,
        iou_threshold=0.4,
        sources=("models/widget.onnx",),
    )


@pytest.fixture
def frame_pixels() -> np.ndarray:
    return np.zeros((480, 640, 3), dtype=np.uint8)
