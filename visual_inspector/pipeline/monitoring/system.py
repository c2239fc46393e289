"""Memory probes and device profiling for the detection runtime."""

from __future__ import annotations

import os

import psutil
from loguru import logger

from visual_inspector.pipeline.types import DeviceProfile


try:
    import pynvml

    PYNVML_AVAILABLE = True
except ImportError:
    PYNVML_AVAILABLE = False
    logger.warning("pynvml not available - GPU memory monitoring disabled")


CONSTRAINED_PROFILE = DeviceProfile(
    max_memory_mb=256.0,
    max_fps=15.0,
    min_inference_interval_ms=500.0,
    is_constrained=True,
)
STANDARD_PROFILE = DeviceProfile(
    max_memory_mb=1024.0,
    max_fps=30.0,
    min_inference_interval_ms=100.0,
    is_constrained=False,
)

CONSTRAINED_RAM_GB = 4.0
CONSTRAINED_CPU_COUNT = 4

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _constrained_override() -> bool | None:
    raw = os.getenv("VISUAL_INSPECTOR_CONSTRAINED", "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return None


def probe_device_profile() -> DeviceProfile:
    """Derive the device profile from RAM, CPU count and battery presence."""
    override = _constrained_override()
    if override is not None:
        logger.info("Device profile forced by environment: constrained={}", override)
        return CONSTRAINED_PROFILE if override else STANDARD_PROFILE

    ram_gb = psutil.virtual_memory().total / (1024**3)
    cpu_count = psutil.cpu_count() or 1
    on_battery = False
    try:
        battery = psutil.sensors_battery()
    except (AttributeError, NotImplementedError, OSError) as exc:
        logger.debug("Battery sensor unavailable: {}", exc)
        battery = None
    if battery is not None:
        on_battery = not battery.power_plugged

    constrained = (
        ram_gb < CONSTRAINED_RAM_GB
        or cpu_count <= CONSTRAINED_CPU_COUNT
        or on_battery
    )
    profile = CONSTRAINED_PROFILE if constrained else STANDARD_PROFILE
    logger.info(
        "Device profile: {:.1f} GB RAM, {} CPUs, battery={} -> constrained={}",
        ram_gb,
        cpu_count,
        on_battery,
        constrained,
    )
    return profile


class SystemMonitor:
    """Read accelerator and process memory usage in megabytes."""

    def __init__(self, gpu_device_id: int = 0) -> None:
        self.gpu_device_id = gpu_device_id
        self.gpu_handle = None
        self.gpu_available = False
        self.gpu_name = "N/A"

        if PYNVML_AVAILABLE:
            try:
                pynvml.nvmlInit()
                self.gpu_handle = pynvml.nvmlDeviceGetHandleByIndex(gpu_device_id)
                gpu_name = pynvml.nvmlDeviceGetName(self.gpu_handle)
                if isinstance(gpu_name, bytes):
                    gpu_name = gpu_name.decode("utf-8")
                self.gpu_name = gpu_name
                self.gpu_available = True
                logger.success("GPU memory monitoring initialized: {}", self.gpu_name)
            except Exception as exc:
                logger.warning("Failed to initialize GPU monitoring: {}", exc)

        self.process = psutil.Process()

    def process_memory_mb(self) -> float:
        try:
            return self.process.memory_info().rss / (1024**2)
        except psutil.Error as exc:
            logger.debug("Unable to read process memory: {}", exc)
            return 0.0

    def gpu_memory_mb(self) -> float | None:
        if not (self.gpu_available and self.gpu_handle):
            return None
        try:
            mem = pynvml.nvmlDeviceGetMemoryInfo(self.gpu_handle)
        except Exception as exc:
            logger.warning("Error reading GPU memory: {}", exc)
            return None
        return mem.used / (1024**2)

    def accelerator_memory_mb(self) -> float:
        """GPU memory in use when NVML is available, else process RSS."""
        gpu_mb = self.gpu_memory_mb()
        if gpu_mb is not None:
            return gpu_mb
        return self.process_memory_mb()

    def shutdown(self) -> None:
        if PYNVML_AVAILABLE and self.gpu_available:
            try:
                pynvml.nvmlShutdown()
            except Exception as exc:
                logger.debug("NVML shutdown failed: {}", exc)
            else:
                logger.debug("GPU monitoring shutdown complete")
            self.gpu_available = False
