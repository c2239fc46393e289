"""Shared data structures for the detection pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np


if TYPE_CHECKING:
    from collections.abc import Sequence


class PerformanceMode(Enum):
    """Adaptive throttling state owned by the inference scheduler."""

    HIGH = "high"
    BALANCED = "balanced"
    POWER_SAVE = "power_save"


class SessionState(Enum):
    """Lifecycle of a detection session."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DETECTING = "detecting"
    STOPPED = "stopped"


class HealthState(Enum):
    """Resource health of the execution backend."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RECOVERING = "recovering"
    RECOVERED = "recovered"
    CPU_FALLBACK = "cpu_fallback"
    FAILED = "failed"


class ExecutionBackend(Enum):
    """Execution path the models run on."""

    ACCELERATED = "accelerated"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RawModelOutput:
    """Flat row-major output buffer plus its tensor shape."""

    buffer: np.ndarray
    shape: tuple[int, ...]

    @classmethod
    def from_array(cls, array: np.ndarray) -> RawModelOutput:
        data = np.asarray(array, dtype=np.float32)
        return cls(buffer=data.reshape(-1), shape=tuple(int(d) for d in data.shape))


@dataclass(frozen=True)
class Candidate:
    """Unfiltered box proposal in model input space."""

    center_x: float
    center_y: float
    width: float
    height: float
    class_scores: tuple[float, ...]
    best_class: int
    best_score: float


@dataclass(frozen=True)
class Detection:
    """Final box in destination (display) space."""

    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_id: int
    class_name: str

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)


@dataclass(frozen=True)
class BoxFilter:
    """Geometric sanity limits applied in destination space."""

    min_size: float = 0.0
    min_aspect: float = 0.0
    max_aspect: float = float("inf")


@dataclass(frozen=True)
class ModelConfig:
    """Per-model calibration for the generic decode/normalize/suppress path.

    ``tie_class`` names the class that wins an exact score tie; by default
    the lowest class index wins.
    """

    name: str
    class_names: tuple[str, ...]
    input_size: int = 640
    reduced_input_size: int | None = None
    pre_threshold: float | Sequence[float] = 0.25
    final_threshold: float = 0.25
    iou_threshold: float = 0.4
    box_filter: BoxFilter | None = None
    max_detections: int = 10
    input_layout: str = "nchw"
    sources: tuple[str, ...] = ()
    tie_class: int | None = None

    @property
    def num_classes(self) -> int:
        return len(self.class_names)


@dataclass(frozen=True)
class DeviceProfile:
    """Platform-derived limits, resolved once at startup."""

    max_memory_mb: float
    max_fps: float
    min_inference_interval_ms: float
    is_constrained: bool


@dataclass
class Timings:
    """Per-stage wall-clock durations in milliseconds."""

    preprocess: float = 0.0
    inference: float = 0.0
    postprocess: float = 0.0

    @property
    def total(self) -> float:
        return self.preprocess + self.inference + self.postprocess


@dataclass
class DetectionResult:
    """Outcome of one frame handed back to the caller."""

    detections: list[Detection] = field(default_factory=list)
    confidence: float = 0.0
    timings: Timings = field(default_factory=Timings)
    skipped: bool = False

    @classmethod
    def empty(cls, *, skipped: bool = False) -> DetectionResult:
        return cls(skipped=skipped)


@dataclass
class PerformanceStats:
    """Snapshot for UI and telemetry display."""

    mode: PerformanceMode = PerformanceMode.HIGH
    memory_mb: float = 0.0
    tensor_count: int = 0
    is_healthy: bool = True
    health: HealthState = HealthState.HEALTHY
    backend: ExecutionBackend = ExecutionBackend.ACCELERATED
    inference_ms: float = 0.0
