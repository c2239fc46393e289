"""Accelerator memory health checks and backend recovery."""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from visual_inspector.pipeline.errors import BackendExhausted
from visual_inspector.pipeline.types import (
    DeviceProfile,
    ExecutionBackend,
    HealthState,
)


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


CONSTRAINED_INTERVAL_S = 5.0
STANDARD_INTERVAL_S = 10.0
PREEMPTIVE_CLEANUP_RATIO = 0.8
WARNING_INTERVAL_S = 5.0

# Provider names alone are not enough: CUDA and DirectML also report
# ordinary argument errors.
FAILURE_SIGNATURES = (
    "context lost",
    "context_lost",
    "contextlost",
    "device lost",
    "device removed",
    "device_removed",
    "device_hung",
    "out of memory",
    "failed to allocate",
    "status_alloc_failed",
    "cudaerrormemoryallocation",
    "cudaerrordevicesunavailable",
    "cudaerrorillegaladdress",
    "cudaerrorlaunchfailure",
    "unspecified launch failure",
)


def is_backend_failure(exc: BaseException) -> bool:
    """Return True when an error reads like accelerator loss or exhaustion."""
    text = f"{type(exc).__name__}: {exc}".lower()
    return any(token in text for token in FAILURE_SIGNATURES)


class RecoveryTarget(Protocol):
    """What the health monitor needs from the pipeline it protects."""

    lock: asyncio.Lock
    backend: ExecutionBackend

    def dispose_models(self) -> None:
        """Drop every loaded model."""
        ...

    def release_buffers(self) -> int:
        """Free transient buffers; return how many were released."""
        ...

    async def reinitialize(self, backend: ExecutionBackend) -> None:
        """Load the models again on ``backend``."""
        ...


class ResourceHealthMonitor:
    """Watch memory against the device ceiling and drive backend recovery.

    State machine::

        HEALTHY -> DEGRADED (80% of ceiling) -> HEALTHY
        any -> RECOVERING -> RECOVERED (accelerated) | CPU_FALLBACK
        CPU_FALLBACK -> RECOVERING -> CPU_FALLBACK | FAILED

    A failure reported while a recovery is running does not start a second
    recovery; it makes the running one skip the accelerated retry.
    """

    def __init__(
        self,
        profile: DeviceProfile,
        target: RecoveryTarget,
        *,
        memory_probe: Callable[[], float],
        backoff_s: float = 1.0,
        sustained_ticks: int = 2,
        clock: Callable[[], float] = time.monotonic,
        on_pressure: Callable[[], None] | None = None,
        on_exhausted: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.profile = profile
        self.target = target
        self.memory_probe = memory_probe
        self.backoff_s = backoff_s
        self.sustained_ticks = max(1, sustained_ticks)
        self.clock = clock
        self.on_pressure = on_pressure
        self.on_exhausted = on_exhausted

        self.state = HealthState.HEALTHY
        self.last_memory_mb = 0.0
        self.memory_ok = True
        self.recoveries = 0
        self._overflow_ticks = 0
        self._last_warning_ts: float | None = None
        self._recovering = False
        self._escalate = False
        self._task: asyncio.Task[None] | None = None

    @property
    def interval_s(self) -> float:
        if self.profile.is_constrained:
            return CONSTRAINED_INTERVAL_S
        return STANDARD_INTERVAL_S

    @property
    def limit_mb(self) -> float:
        return self.profile.max_memory_mb

    @property
    def is_healthy(self) -> bool:
        return self.memory_ok and self.state in {
            HealthState.HEALTHY,
            HealthState.RECOVERED,
            HealthState.CPU_FALLBACK,
        }

    @property
    def is_recovering(self) -> bool:
        return self._recovering

    def check_health(self, current_memory_mb: float, limit_mb: float) -> bool:
        """Return False when usage exceeds the limit; warn at most every 5s."""
        healthy = current_memory_mb <= limit_mb
        if not healthy:
            now = self.clock()
            if (
                self._last_warning_ts is None
                or now - self._last_warning_ts >= WARNING_INTERVAL_S
            ):
                logger.warning(
                    "Memory usage {:.0f}MB exceeds limit {:.0f}MB",
                    current_memory_mb,
                    limit_mb,
                )
                self._last_warning_ts = now
        self.memory_ok = healthy
        return healthy

    async def tick(self) -> HealthState:
        """Run one monitoring pass: measure, clean up, and recover if needed."""
        if self.state is HealthState.FAILED or self._recovering:
            return self.state

        usage = float(self.memory_probe())
        self.last_memory_mb = usage
        healthy = self.check_health(usage, self.limit_mb)

        if usage >= self.limit_mb * PREEMPTIVE_CLEANUP_RATIO:
            async with self.target.lock:
                released = self.target.release_buffers()
            logger.info(
                "Preemptive cleanup at {:.0f}/{:.0f}MB released {} buffers",
                usage,
                self.limit_mb,
                released,
            )
            if self.state in {HealthState.HEALTHY, HealthState.RECOVERED}:
                self._set_state(HealthState.DEGRADED, "memory pressure")
                if self.on_pressure is not None:
                    self.on_pressure()
        elif self.state is HealthState.DEGRADED:
            self._set_state(HealthState.HEALTHY, "memory back under threshold")

        if healthy:
            self._overflow_ticks = 0
            return self.state

        self._overflow_ticks += 1
        if self._overflow_ticks >= self.sustained_ticks:
            self._overflow_ticks = 0
            await self.recover("sustained memory overflow")
        return self.state

    async def recover(self, reason: str) -> HealthState:
        """Dispose, clean up, back off, then reinitialize the backend.

        Raises :class:`BackendExhausted` when even the CPU path cannot be
        brought back.
        """
        if self.state is HealthState.FAILED:
            message = "Execution backend already exhausted"
            raise BackendExhausted(message)
        if self._recovering:
            logger.warning("Failure during recovery ({}); escalating to CPU", reason)
            self._escalate = True
            return self.state

        self._recovering = True
        self.recoveries += 1
        previous = self.state
        disposed = False
        self._set_state(HealthState.RECOVERING, reason)
        try:
            async with self.target.lock:
                self.target.dispose_models()
                disposed = True
                released = self.target.release_buffers()
            logger.info("Disposed models and released {} buffers", released)

            await asyncio.sleep(self.backoff_s)

            if (
                not self._escalate
                and self.target.backend is ExecutionBackend.ACCELERATED
            ):
                if await self._reinitialize(ExecutionBackend.ACCELERATED):
                    if not self._escalate:
                        self._set_state(HealthState.RECOVERED, "accelerated backend")
                        return self.state
                    async with self.target.lock:
                        self.target.dispose_models()

            if not await self._reinitialize(ExecutionBackend.FALLBACK):
                self._set_state(HealthState.FAILED, "CPU fallback failed")
                message = f"Backend recovery failed after {reason}"
                raise BackendExhausted(message)
            self._set_state(HealthState.CPU_FALLBACK, "running on CPU")
            return self.state
        except asyncio.CancelledError:
            # models may be gone; the next start() reloads them
            if disposed and previous is not HealthState.CPU_FALLBACK:
                previous = HealthState.HEALTHY
            self._set_state(previous, "recovery cancelled")
            raise
        finally:
            self._recovering = False
            self._escalate = False

    async def _reinitialize(self, backend: ExecutionBackend) -> bool:
        try:
            async with self.target.lock:
                await self.target.reinitialize(backend)
        except Exception as exc:
            logger.warning("Reinitializing {} backend failed: {}", backend.value, exc)
            return False
        logger.success("Backend reinitialized on {}", backend.value)
        return True

    def _set_state(self, state: HealthState, reason: str) -> None:
        if state is self.state:
            return
        logger.info("Health {} -> {} ({})", self.state.value, state.value, reason)
        self.state = state

    async def run(self) -> None:
        """Tick forever at the profile-dependent interval."""
        while self.state is not HealthState.FAILED:
            await asyncio.sleep(self.interval_s)
            try:
                await self.tick()
            except BackendExhausted:
                logger.error("Health monitor stopping: backend exhausted")
                # detach first so the callback may call stop()
                self._task = None
                if self.on_exhausted is not None:
                    await self.on_exhausted()
                return
            except Exception as exc:
                logger.exception("Health check failed: {}", exc)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self.run(), name="health-monitor"
            )
            logger.debug("Health monitor started ({:.0f}s interval)", self.interval_s)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Health monitor stopped")

    def reset(self) -> None:
        """Forget memory history; keeps FAILED and CPU_FALLBACK for the session."""
        self._overflow_ticks = 0
        self.memory_ok = True
        if self.state in {
            HealthState.DEGRADED,
            HealthState.RECOVERING,
            HealthState.RECOVERED,
        }:
            self.state = HealthState.HEALTHY
