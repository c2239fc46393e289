"""Per-frame inference gating with adaptive performance modes."""

from __future__ import annotations

import math
import time

from loguru import logger

from visual_inspector.pipeline.types import DeviceProfile, PerformanceMode


HIGH_LATENCY_MS = 200.0
LOW_LATENCY_MS = 100.0
LOW_BATTERY_PERCENT = 20.0

# (cycle length, frames run per cycle)
_FRAME_CADENCE = {
    PerformanceMode.HIGH: (1, 1),
    PerformanceMode.BALANCED: (3, 2),
    PerformanceMode.POWER_SAVE: (4, 1),
}


def _now_ms() -> float:
    return time.perf_counter() * 1000.0


def mode_for_latency(latency_ms: float) -> PerformanceMode:
    """Map one observed inference latency onto a performance mode."""
    if latency_ms > HIGH_LATENCY_MS:
        return PerformanceMode.POWER_SAVE
    if latency_ms >= LOW_LATENCY_MS:
        return PerformanceMode.BALANCED
    return PerformanceMode.HIGH


class InferenceScheduler:
    """Decide, frame by frame, whether an inference pass should run.

    Two gates must both pass: a minimum interval since the last accepted
    frame (doubled in ``power_save``) and a frame-skip cadence that drops
    1/3 of frames in ``balanced`` and 3/4 in ``power_save``. External
    signals (backgrounded app, low battery, low memory) force
    ``power_save``; the first two hold it until the signal clears.

    The scheduler never raises: bad inputs are logged and treated as
    "skip this frame" or "keep the current mode".
    """

    def __init__(self, profile: DeviceProfile) -> None:
        self.profile = profile
        self.initial_mode = (
            PerformanceMode.BALANCED if profile.is_constrained else PerformanceMode.HIGH
        )
        self.mode = self.initial_mode
        self.last_inference_ms: float | None = None
        self.frame_index = 0
        self.transitions = 0
        self._holds: set[str] = set()

    @property
    def min_interval_ms(self) -> float:
        base = self.profile.min_inference_interval_ms
        return base * 2 if self.mode is PerformanceMode.POWER_SAVE else base

    @property
    def forced(self) -> bool:
        return bool(self._holds)

    def should_run_inference(self, now: float | None = None) -> bool:
        """Return True when the frame arriving at ``now`` (ms) should be inferred."""
        now_ms = _now_ms() if now is None else now
        frame_index = self.frame_index
        self.frame_index += 1

        if not isinstance(now_ms, (int, float)) or math.isnan(now_ms):
            logger.warning("Ignoring frame with invalid timestamp {!r}", now)
            return False

        if (
            self.last_inference_ms is not None
            and now_ms - self.last_inference_ms < self.min_interval_ms
        ):
            return False

        cycle, runs = _FRAME_CADENCE[self.mode]
        if frame_index % cycle >= runs:
            return False

        self.last_inference_ms = now_ms
        return True

    def adjust_mode(self, observed_latency_ms: float) -> PerformanceMode:
        """Move to the mode matching the latency of the inference that just ended."""
        try:
            latency = float(observed_latency_ms)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric latency {!r}", observed_latency_ms)
            return self.mode
        if math.isnan(latency) or latency < 0:
            logger.warning("Ignoring invalid latency {}", observed_latency_ms)
            return self.mode

        if self._holds:
            return self.mode

        self._set_mode(mode_for_latency(latency), f"latency {latency:.0f}ms")
        return self.mode

    def force_power_save(self, reason: str, *, hold: bool = False) -> None:
        """Jump straight to ``power_save``; ``hold`` pins it until released."""
        if hold:
            self._holds.add(reason)
        self._set_mode(PerformanceMode.POWER_SAVE, reason)

    def release(self, reason: str) -> None:
        """Clear a held override; latency drives the mode again once none remain."""
        if reason in self._holds:
            self._holds.discard(reason)
            logger.info("Power-save hold released: {}", reason)

    def on_backgrounded(self) -> None:
        self.force_power_save("backgrounded", hold=True)

    def on_foregrounded(self) -> None:
        self.release("backgrounded")

    def on_battery_level(self, percent: float) -> None:
        if percent < LOW_BATTERY_PERCENT:
            if "low_battery" not in self._holds:
                self.force_power_save("low_battery", hold=True)
        else:
            self.release("low_battery")

    def on_low_memory(self) -> None:
        self.force_power_save("low_memory")

    def _set_mode(self, mode: PerformanceMode, reason: str) -> None:
        if mode is self.mode:
            return
        logger.info(
            "Performance mode {} -> {} ({})", self.mode.value, mode.value, reason
        )
        self.mode = mode
        self.transitions += 1

    def reset(self) -> None:
        """Return to the startup state when a session stops."""
        self.mode = self.initial_mode
        self.last_inference_ms = None
        self.frame_index = 0
        self._holds.clear()
