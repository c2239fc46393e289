from __future__ import annotations

from visual_inspector.pipeline.buffers import BufferPool
from visual_inspector.pipeline.logging import configure_logging
from visual_inspector.pipeline.metrics.performance import PerformanceTracker
from visual_inspector.pipeline.monitoring.health import ResourceHealthMonitor
from visual_inspector.pipeline.monitoring.power import BatteryEvent, BatteryWatcher
from visual_inspector.pipeline.monitoring.system import (
    PYNVML_AVAILABLE,
    SystemMonitor,
    probe_device_profile,
)
from visual_inspector.pipeline.scheduling import InferenceScheduler
from visual_inspector.pipeline.types import (
    DeviceProfile,
    ExecutionBackend,
    HealthState,
    SessionState,
)


__all__ = [
    "PYNVML_AVAILABLE",
    "BatteryEvent",
    "BatteryWatcher",
    "BufferPool",
    "DeviceProfile",
    "ExecutionBackend",
    "HealthState",
    "InferenceScheduler",
    "PerformanceTracker",
    "ResourceHealthMonitor",
    "SessionState",
    "SystemMonitor",
    "configure_logging",
    "probe_device_profile",
]
