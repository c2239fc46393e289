"""Memory, battery and backend health monitoring."""

from visual_inspector.pipeline.monitoring.health import ResourceHealthMonitor
from visual_inspector.pipeline.monitoring.power import BatteryWatcher
from visual_inspector.pipeline.monitoring.system import SystemMonitor


__all__ = ["BatteryWatcher", "ResourceHealthMonitor", "SystemMonitor"]
