"""Unit tests for device profiling and memory probes."""

from unittest.mock import Mock, patch

from visual_inspector.pipeline.monitoring.system import (
    CONSTRAINED_PROFILE,
    STANDARD_PROFILE,
    SystemMonitor,
    probe_device_profile,
)

GB = 1024**3


def fake_psutil(mock_psutil, ram_gb=16, cpus=8, battery=None):
    mock_psutil.virtual_memory.return_value = Mock(total=ram_gb * GB)
    mock_psutil.cpu_count.return_value = cpus
    mock_psutil.sensors_battery.return_value = battery


class TestProbeDeviceProfile:
    """Tests for probe_device_profile()."""

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_workstation_is_standard(self, mock_psutil, monkeypatch):
        monkeypatch.delenv("VISUAL_INSPECTOR_CONSTRAINED", raising=False)
        fake_psutil(mock_psutil)

        assert probe_device_profile() is STANDARD_PROFILE

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_low_ram_is_constrained(self, mock_psutil, monkeypatch):
        monkeypatch.delenv("VISUAL_INSPECTOR_CONSTRAINED", raising=False)
        fake_psutil(mock_psutil, ram_gb=2)

        assert probe_device_profile() is CONSTRAINED_PROFILE

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_few_cores_is_constrained(self, mock_psutil, monkeypatch):
        monkeypatch.delenv("VISUAL_INSPECTOR_CONSTRAINED", raising=False)
        fake_psutil(mock_psutil, cpus=4)

        assert probe_device_profile() is CONSTRAINED_PROFILE

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_on_battery_is_constrained(self, mock_psutil, monkeypatch):
        monkeypatch.delenv("VISUAL_INSPECTOR_CONSTRAINED", raising=False)
        fake_psutil(mock_psutil, battery=Mock(percent=80, power_plugged=False))

        assert probe_device_profile() is CONSTRAINED_PROFILE

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_plugged_in_laptop_is_standard(self, mock_psutil, monkeypatch):
        monkeypatch.delenv("VISUAL_INSPECTOR_CONSTRAINED", raising=False)
        fake_psutil(mock_psutil, battery=Mock(percent=80, power_plugged=True))

        assert probe_device_profile() is STANDARD_PROFILE

    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_environment_override(self, mock_psutil, monkeypatch):
        fake_psutil(mock_psutil)

        monkeypatch.setenv("VISUAL_INSPECTOR_CONSTRAINED", "1")
        assert probe_device_profile() is CONSTRAINED_PROFILE

        fake_psutil(mock_psutil, ram_gb=1, cpus=1)
        monkeypatch.setenv("VISUAL_INSPECTOR_CONSTRAINED", "false")
        assert probe_device_profile() is STANDARD_PROFILE

    def test_profile_limits(self):
        assert CONSTRAINED_PROFILE.max_memory_mb == 256.0
        assert CONSTRAINED_PROFILE.min_inference_interval_ms == 500.0
        assert STANDARD_PROFILE.max_memory_mb == 1024.0
        assert STANDARD_PROFILE.min_inference_interval_ms == 100.0


class TestSystemMonitor:
    """Tests for SystemMonitor memory probes."""

    @patch("visual_inspector.pipeline.monitoring.system.PYNVML_AVAILABLE", False)
    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_process_memory_without_gpu(self, mock_psutil):
        mock_psutil.Process.return_value.memory_info.return_value = Mock(
            rss=128 * 1024**2
        )

        monitor = SystemMonitor()

        assert monitor.gpu_available is False
        assert monitor.gpu_memory_mb() is None
        assert monitor.process_memory_mb() == 128.0
        assert monitor.accelerator_memory_mb() == 128.0

    @patch("visual_inspector.pipeline.monitoring.system.PYNVML_AVAILABLE", True)
    @patch("visual_inspector.pipeline.monitoring.system.pynvml", create=True)
    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_gpu_memory_preferred(self, mock_psutil, mock_pynvml):
        mock_pynvml.nvmlDeviceGetName.return_value = b"Test GPU"
        mock_pynvml.nvmlDeviceGetMemoryInfo.return_value = Mock(used=512 * 1024**2)
        mock_psutil.Process.return_value.memory_info.return_value = Mock(
            rss=128 * 1024**2
        )

        monitor = SystemMonitor(gpu_device_id=1)

        assert monitor.gpu_available is True
        assert monitor.gpu_name == "Test GPU"
        mock_pynvml.nvmlDeviceGetHandleByIndex.assert_called_once_with(1)
        assert monitor.accelerator_memory_mb() == 512.0

        monitor.shutdown()
        mock_pynvml.nvmlShutdown.assert_called_once()
        assert monitor.gpu_available is False

    @patch("visual_inspector.pipeline.monitoring.system.PYNVML_AVAILABLE", True)
    @patch("visual_inspector.pipeline.monitoring.system.pynvml", create=True)
    @patch("visual_inspector.pipeline.monitoring.system.psutil")
    def test_nvml_init_failure(self, mock_psutil, mock_pynvml):
        mock_pynvml.nvmlInit.side_effect = RuntimeError("driver not loaded")

        monitor = SystemMonitor()

        assert monitor.gpu_available is False
        assert monitor.gpu_memory_mb() is None
