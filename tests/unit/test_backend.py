"""Unit tests for execution providers, retries and model loading."""

import asyncio
from types import SimpleNamespace
from unittest.mock import patch

import numpy as np
import pytest

from visual_inspector.pipeline.errors import BackendFailure, ModelLoadFailure
from visual_inspector.pipeline.types import ExecutionBackend
from visual_inspector.yolo.backend import (
    CPU_PROVIDER,
    BackendOptions,
    OnnxModelHandle,
    OnnxModelLoader,
    retry_with_backoff,
)


class FakeSession:
    def __init__(self, shape=(1, 3, 640, 640), providers=(CPU_PROVIDER,)):
        self._inputs = [SimpleNamespace(name="images", shape=list(shape))]
        self._providers = list(providers)
        self.feeds = []

    def get_inputs(self):
        return self._inputs

    def get_providers(self):
        return self._providers

    def run(self, output_names, feeds):
        self.feeds.append(feeds)
        return [np.ones((1, 6, 10), dtype=np.float32)]


class FakeSessionFactory:
    def __init__(self):
        self.calls = []

    def __call__(self, source, sess_options=None, providers=None):
        self.calls.append((source, providers))
        return FakeSession()


class TestBackendOptions:
    """Tests for provider selection."""

    def test_fallback_is_cpu_only(self):
        providers = BackendOptions().providers_for(
            ExecutionBackend.FALLBACK, ["CUDAExecutionProvider", CPU_PROVIDER]
        )
        assert providers == [CPU_PROVIDER]

    def test_cuda_gets_device_options(self):
        providers = BackendOptions(device_id=1).providers_for(
            ExecutionBackend.ACCELERATED, ["CUDAExecutionProvider", CPU_PROVIDER]
        )

        assert providers == [
            (
                "CUDAExecutionProvider",
                {"device_id": 1, "arena_extend_strategy": "kNextPowerOfTwo"},
            )
        ]

    def test_plain_accelerator(self):
        providers = BackendOptions().providers_for(
            ExecutionBackend.ACCELERATED, ["DmlExecutionProvider", CPU_PROVIDER]
        )
        assert providers == ["DmlExecutionProvider"]

    def test_no_accelerator_available(self):
        with pytest.raises(BackendFailure):
            BackendOptions().providers_for(ExecutionBackend.ACCELERATED, [CPU_PROVIDER])


class TestRetryWithBackoff:
    """Tests for retry_with_backoff()."""

    def test_succeeds_after_failures(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise OSError("network down")
            return "model"

        result = asyncio.run(retry_with_backoff(flaky, attempts=3, base_delay_s=0.0))

        assert result == "model"
        assert len(calls) == 3

    def test_raises_last_error(self):
        calls = []

        async def broken():
            calls.append(1)
            message = f"attempt {len(calls)}"
            raise OSError(message)

        with pytest.raises(OSError, match="attempt 2"):
            asyncio.run(retry_with_backoff(broken, attempts=2, base_delay_s=0.0))

    def test_no_retry_errors_propagate_immediately(self):
        calls = []

        async def lost():
            calls.append(1)
            message = "no accelerator"
            raise BackendFailure(message)

        with pytest.raises(BackendFailure):
            asyncio.run(
                retry_with_backoff(
                    lost, attempts=5, base_delay_s=0.0, no_retry=(BackendFailure,)
                )
            )
        assert len(calls) == 1

    def test_rejects_zero_attempts(self):
        async def noop():
            return None

        with pytest.raises(ValueError):
            asyncio.run(retry_with_backoff(noop, attempts=0))


class TestOnnxModelHandle:
    """Tests for the onnxruntime-backed handle."""

    def test_predict(self):
        session = FakeSession()
        handle = OnnxModelHandle(session, "model.onnx")
        blob = np.zeros((1, 3, 640, 640), dtype=np.float32)

        output = asyncio.run(handle.predict(blob))

        assert handle.input_size == 640
        assert output.shape == (1, 6, 10)
        assert output.buffer.shape == (60,)
        assert "images" in session.feeds[0]

    def test_dynamic_input_size(self):
        handle = OnnxModelHandle(FakeSession(shape=("batch", 3, "h", "w")), "m.onnx")
        assert handle.input_size is None

    def test_predict_after_dispose(self):
        handle = OnnxModelHandle(FakeSession(), "model.onnx")
        handle.dispose()

        with pytest.raises(BackendFailure):
            asyncio.run(handle.predict(np.zeros((1, 3, 640, 640), dtype=np.float32)))


class TestOnnxModelLoader:
    """Tests for ordered-source model loading."""

    def test_first_available_source_wins(self, tmp_path):
        model_path = tmp_path / "model.onnx"
        model_path.write_bytes(b"onnx")
        factory = FakeSessionFactory()
        loader = OnnxModelLoader(attempts=1, base_delay_s=0.0, session_factory=factory)

        handle = asyncio.run(
            loader.load(
                [str(tmp_path / "missing.onnx"), str(model_path)],
                ExecutionBackend.FALLBACK,
            )
        )

        assert handle.source == str(model_path)
        assert factory.calls == [(str(model_path), [CPU_PROVIDER])]

    def test_all_sources_fail(self, tmp_path):
        loader = OnnxModelLoader(
            attempts=2, base_delay_s=0.0, session_factory=FakeSessionFactory()
        )

        with pytest.raises(ModelLoadFailure, match="missing.onnx"):
            asyncio.run(
                loader.load([str(tmp_path / "missing.onnx")], ExecutionBackend.FALLBACK)
            )

    def test_no_sources(self):
        with pytest.raises(ModelLoadFailure):
            asyncio.run(OnnxModelLoader().load([], ExecutionBackend.FALLBACK))

    @patch(
        "visual_inspector.yolo.backend.ort.get_available_providers",
        return_value=[CPU_PROVIDER],
    )
    def test_missing_accelerator_is_backend_failure(self, _providers, tmp_path):
        model_path = tmp_path / "model.onnx"
        model_path.write_bytes(b"onnx")
        factory = FakeSessionFactory()
        loader = OnnxModelLoader(attempts=3, base_delay_s=0.0, session_factory=factory)

        with pytest.raises(BackendFailure):
            asyncio.run(loader.load([str(model_path)], ExecutionBackend.ACCELERATED))
        assert factory.calls == []
