"""Detection session: lifecycle, frame gating and failure routing."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

from loguru import logger

from visual_inspector.pipeline.errors import BackendExhausted, BackendFailure
from visual_inspector.pipeline.metrics.performance import PerformanceTracker
from visual_inspector.pipeline.monitoring.health import ResourceHealthMonitor
from visual_inspector.pipeline.monitoring.system import probe_device_profile
from visual_inspector.pipeline.scheduling import InferenceScheduler
from visual_inspector.pipeline.types import (
    DetectionResult,
    HealthState,
    PerformanceStats,
    SessionState,
)


if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable

    from visual_inspector.pipeline.monitoring.power import BatteryWatcher
    from visual_inspector.pipeline.monitoring.system import SystemMonitor
    from visual_inspector.pipeline.types import DeviceProfile
    from visual_inspector.yolo.detector import Detector, Frame


_TRANSITIONS = {
    SessionState.IDLE: {SessionState.LOADING, SessionState.STOPPED},
    SessionState.LOADING: {SessionState.READY, SessionState.IDLE, SessionState.STOPPED},
    SessionState.READY: {SessionState.DETECTING, SessionState.STOPPED},
    SessionState.DETECTING: {SessionState.READY, SessionState.STOPPED},
    SessionState.STOPPED: {SessionState.LOADING},
}


class DetectionSession:
    """Drive one detector from a stream of frames.

    Frames are gated by the scheduler, inferred one at a time in submission
    order, and routed to the health monitor when the backend fails. Results
    of an inference that finishes after :meth:`stop` are discarded.
    """

    def __init__(
        self,
        detector: Detector,
        profile: DeviceProfile | None = None,
        *,
        system_monitor: SystemMonitor | None = None,
        battery: BatteryWatcher | None = None,
        memory_probe: Callable[[], float] | None = None,
        backoff_s: float = 1.0,
    ) -> None:
        self.detector = detector
        self.profile = profile or probe_device_profile()
        self.scheduler = InferenceScheduler(self.profile)
        self.system_monitor = system_monitor
        self.battery = battery
        if memory_probe is None:
            memory_probe = (
                system_monitor.accelerator_memory_mb
                if system_monitor is not None
                else lambda: detector.buffers.memory_mb
            )
        self.health = ResourceHealthMonitor(
            self.profile,
            detector,
            memory_probe=memory_probe,
            backoff_s=backoff_s,
            on_pressure=self.scheduler.on_low_memory,
            on_exhausted=self._shut_down_exhausted,
        )
        self.perf = PerformanceTracker()
        self.state = SessionState.IDLE
        self.generation = 0
        self._cached = DetectionResult.empty(skipped=True)
        self._battery_task: asyncio.Task[None] | None = None

    def _set_state(self, state: SessionState) -> None:
        if state is self.state:
            return
        if state not in _TRANSITIONS[self.state]:
            message = f"Invalid session transition {self.state.value} -> {state.value}"
            raise RuntimeError(message)
        logger.debug("Session {} -> {}", self.state.value, state.value)
        self.state = state

    @property
    def is_active(self) -> bool:
        return self.state in {SessionState.READY, SessionState.DETECTING}

    async def start(self, *, monitor: bool = True) -> None:
        """Load the model and begin accepting frames."""
        if self.state in {
            SessionState.LOADING,
            SessionState.READY,
            SessionState.DETECTING,
        }:
            return
        if self.health.state is HealthState.FAILED:
            message = "Backend exhausted; create a new session"
            raise BackendExhausted(message)

        self._set_state(SessionState.LOADING)
        if not self.detector.is_ready:
            try:
                await self.detector.load()
            except Exception:
                self._set_state(SessionState.IDLE)
                raise
        self._set_state(SessionState.READY)
        logger.success(
            "Session ready: {} on {} backend (mode {})",
            self.detector.config.name,
            self.detector.backend.value,
            self.scheduler.mode.value,
        )

        if monitor:
            self.health.start()
            if self.battery is not None:
                self._battery_task = asyncio.get_running_loop().create_task(
                    self._watch_battery(), name="battery-watch"
                )

    async def _watch_battery(self) -> None:
        while True:
            event = self.battery.poll()
            if event is not None:
                self.scheduler.on_battery_level(event.percent)
            await asyncio.sleep(self.health.interval_s)

    def _skipped(self) -> DetectionResult:
        cached = self._cached
        return DetectionResult(
            detections=list(cached.detections),
            confidence=cached.confidence,
            timings=cached.timings,
            skipped=True,
        )

    async def process_frame(
        self,
        frame: Frame,
        dest_width: int,
        dest_height: int,
        now_ms: float | None = None,
    ) -> DetectionResult:
        """Run (or skip) inference for one frame.

        Skipped frames get the last result flagged ``skipped``. Only
        :class:`BackendExhausted` is raised to the caller.
        """
        if self.health.state is HealthState.FAILED:
            message = "Backend exhausted; restart the session"
            raise BackendExhausted(message)

        self.perf.tick_frame()
        if self.state is SessionState.DETECTING:
            return self._skipped()
        if self.state is not SessionState.READY:
            return DetectionResult.empty()
        if self.health.is_recovering:
            return DetectionResult.empty(skipped=True)
        if not self.scheduler.should_run_inference(now_ms):
            return self._skipped()

        generation = self.generation
        self._set_state(SessionState.DETECTING)
        start = time.perf_counter()
        try:
            result = await self.detector.detect(
                frame, dest_width, dest_height, mode=self.scheduler.mode
            )
        except BackendFailure as exc:
            logger.warning("Dropping frame after backend failure: {}", exc)
            if self.state is SessionState.DETECTING:
                self._set_state(SessionState.READY)
            await self._recover(str(exc))
            return DetectionResult.empty()
        finally:
            if self.state is SessionState.DETECTING:
                self._set_state(SessionState.READY)
        latency_ms = (time.perf_counter() - start) * 1000.0

        if generation != self.generation:
            logger.debug("Discarding result from stopped session generation")
            return DetectionResult.empty()

        # early returns carry no inference time and say nothing about speed
        if result.timings.inference > 0.0:
            self.perf.add_timings(result.timings)
            self.scheduler.adjust_mode(latency_ms)
        self._cached = result
        return result

    async def _recover(self, reason: str) -> None:
        try:
            await self.health.recover(reason)
        except BackendExhausted:
            await self._shut_down_exhausted()
            raise

    async def _shut_down_exhausted(self) -> None:
        logger.error("Backend exhausted; stopping session")
        await self.stop()
        await self.detector.dispose()

    async def run(
        self,
        frames: Iterable[Frame] | AsyncIterable[Frame],
        dest_width: int,
        dest_height: int,
    ) -> AsyncIterator[DetectionResult]:
        """Yield one result per submitted frame until the session stops."""
        if hasattr(frames, "__aiter__"):
            async for frame in frames:
                if self.state is SessionState.STOPPED:
                    return
                yield await self.process_frame(frame, dest_width, dest_height)
        else:
            for frame in frames:
                if self.state is SessionState.STOPPED:
                    return
                yield await self.process_frame(frame, dest_width, dest_height)
                # let the health monitor and other tasks run between frames
                await asyncio.sleep(0)

    def notify_backgrounded(self) -> None:
        self.scheduler.on_backgrounded()

    def notify_foregrounded(self) -> None:
        self.scheduler.on_foregrounded()

    def notify_battery(self, percent: float) -> None:
        self.scheduler.on_battery_level(percent)

    def notify_low_memory(self) -> None:
        self.scheduler.on_low_memory()

    def get_performance_stats(self) -> PerformanceStats:
        stats = self.detector.get_performance_stats()
        stats.mode = self.scheduler.mode
        stats.memory_mb = self.health.last_memory_mb or stats.memory_mb
        stats.is_healthy = self.health.is_healthy
        stats.health = self.health.state
        stats.inference_ms = self.perf.inference_ms
        return stats

    async def stop(self) -> None:
        """Stop scheduling frames; an in-flight result will be discarded."""
        if self.state in {SessionState.IDLE, SessionState.STOPPED}:
            return
        self.generation += 1
        self._set_state(SessionState.STOPPED)

        await self.health.stop()
        task, self._battery_task = self._battery_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self.scheduler.reset()
        self.health.reset()
        self.perf.reset()
        self._cached = DetectionResult.empty(skipped=True)
        logger.info("Session {} stopped", self.detector.config.name)

    async def dispose(self) -> None:
        """Stop the session and release every held resource."""
        await self.stop()
        await self.detector.dispose()
        if self.system_monitor is not None:
            self.system_monitor.shutdown()
