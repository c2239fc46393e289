"""Battery signal watcher feeding the inference scheduler."""

from __future__ import annotations

from dataclasses import dataclass

import psutil
from loguru import logger

from visual_inspector.pipeline.scheduling import LOW_BATTERY_PERCENT


@dataclass(frozen=True)
class BatteryEvent:
    """Edge event emitted when the battery crosses the low threshold."""

    percent: float
    low: bool


class BatteryWatcher:
    """Turn polled battery readings into edge-triggered low/recovered events."""

    def __init__(self, threshold_percent: float = LOW_BATTERY_PERCENT) -> None:
        self.threshold_percent = threshold_percent
        self._was_low: bool | None = None
        self._sensor_warned = False

    def read_percent(self) -> float | None:
        """Return the battery charge, or None on mains power or without a sensor."""
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError) as exc:
            if not self._sensor_warned:
                logger.debug("Battery sensor unavailable: {}", exc)
                self._sensor_warned = True
            return None
        if battery is None or battery.power_plugged:
            return None
        return float(battery.percent)

    def poll(self) -> BatteryEvent | None:
        """Return an event only when the low-battery state flips."""
        percent = self.read_percent()
        low = percent is not None and percent < self.threshold_percent
        if low == self._was_low or (self._was_low is None and not low):
            self._was_low = low
            return None
        self._was_low = low
        reported = percent if percent is not None else 100.0
        if low:
            logger.warning("Battery low: {:.0f}%", reported)
        else:
            logger.info("Battery recovered or on mains power")
        return BatteryEvent(percent=reported, low=low)
