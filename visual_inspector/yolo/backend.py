"""Model handles on onnxruntime and the loader that creates them."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

import numpy as np
import onnxruntime as ort
from loguru import logger

from visual_inspector.pipeline.errors import BackendFailure, ModelLoadFailure
from visual_inspector.pipeline.types import ExecutionBackend, RawModelOutput
from visual_inspector.yolo.core.preprocess import infer_input_size


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

T = TypeVar("T")

CPU_PROVIDER = "CPUExecutionProvider"


@dataclass(frozen=True)
class BackendOptions:
    """Execution capabilities; the pipeline only picks accelerated or fallback."""

    accelerated_providers: tuple[str, ...] = (
        "CUDAExecutionProvider",
        "DmlExecutionProvider",
        "CoreMLExecutionProvider",
    )
    device_id: int = 0
    arena_extend_strategy: str = "kNextPowerOfTwo"
    cpu_threads: int | None = None
    provider_options: dict[str, dict[str, Any]] = field(default_factory=dict)

    def providers_for(
        self,
        backend: ExecutionBackend,
        available: Sequence[str],
    ) -> list[str | tuple[str, dict[str, Any]]]:
        """Return the onnxruntime provider list for ``backend``.

        Raises :class:`BackendFailure` when no accelerated provider exists.
        """
        if backend is ExecutionBackend.FALLBACK:
            return [CPU_PROVIDER]

        providers: list[str | tuple[str, dict[str, Any]]] = []
        for name in self.accelerated_providers:
            if name not in available:
                continue
            options = dict(self.provider_options.get(name, {}))
            if name == "CUDAExecutionProvider":
                options.setdefault("device_id", self.device_id)
                options.setdefault("arena_extend_strategy", self.arena_extend_strategy)
            providers.append((name, options) if options else name)
        if not providers:
            message = f"No accelerated execution provider available in {list(available)}"
            raise BackendFailure(message)
        return providers


class ModelHandle(Protocol):
    """A loaded model the detector can run."""

    input_size: int | None

    async def predict(self, input_buffer: np.ndarray) -> RawModelOutput:
        """Run one forward pass."""
        ...

    def dispose(self) -> None:
        """Release the model."""
        ...


class OnnxModelHandle:
    """Single-output YOLO model running in an onnxruntime session."""

    def __init__(self, session: ort.InferenceSession, source: str) -> None:
        self.session: ort.InferenceSession | None = session
        self.source = source
        model_input = session.get_inputs()[0]
        self.input_name = model_input.name
        self.input_shape = list(model_input.shape)
        self.providers = session.get_providers()
        self.input_size = infer_input_size(self.input_shape, default=0) or None

    def _run(self, input_buffer: np.ndarray) -> np.ndarray:
        if self.session is None:
            message = f"Model {self.source} was disposed"
            raise BackendFailure(message)
        outputs = self.session.run(None, {self.input_name: input_buffer})
        return np.asarray(outputs[0])

    async def predict(self, input_buffer: np.ndarray) -> RawModelOutput:
        output = await asyncio.to_thread(self._run, input_buffer)
        return RawModelOutput.from_array(output)

    def dispose(self) -> None:
        if self.session is not None:
            logger.debug("Disposing model session {}", self.source)
        self.session = None


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay_s: float = 0.5,
    max_delay_s: float = 8.0,
    label: str = "operation",
    no_retry: tuple[type[BaseException], ...] = (),
) -> T:
    """Await ``operation`` until it succeeds, doubling the delay between tries."""
    if attempts < 1:
        message = "attempts must be at least 1"
        raise ValueError(message)
    delay = base_delay_s
    attempt = 1
    while True:
        try:
            return await operation()
        except no_retry:
            raise
        except Exception as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "{} failed (attempt {}/{}): {}; retrying in {:.1f}s",
                label,
                attempt,
                attempts,
                exc,
                delay,
            )
        await asyncio.sleep(delay)
        delay = min(delay * 2, max_delay_s)
        attempt += 1


class OnnxModelLoader:
    """Load a model from an ordered list of sources, retrying each."""

    def __init__(
        self,
        options: BackendOptions | None = None,
        *,
        attempts: int = 2,
        base_delay_s: float = 0.5,
        session_factory: Callable[..., ort.InferenceSession] | None = None,
    ) -> None:
        self.options = options or BackendOptions()
        self.attempts = attempts
        self.base_delay_s = base_delay_s
        self._session_factory = session_factory or ort.InferenceSession

    def _session_options(self) -> ort.SessionOptions:
        session_options = ort.SessionOptions()
        if self.options.cpu_threads:
            session_options.intra_op_num_threads = self.options.cpu_threads
        return session_options

    def _open(self, source: str, backend: ExecutionBackend) -> OnnxModelHandle:
        if not Path(source).is_file():
            message = f"Model file not found: {source}"
            raise FileNotFoundError(message)
        providers = self.options.providers_for(
            backend, ort.get_available_providers()
        )
        session = self._session_factory(
            source, sess_options=self._session_options(), providers=providers
        )
        return OnnxModelHandle(session, source)

    async def load(
        self,
        sources: Sequence[str],
        backend: ExecutionBackend,
    ) -> OnnxModelHandle:
        """Return a handle for the first source that loads on ``backend``."""
        if not sources:
            message = "No model sources configured"
            raise ModelLoadFailure(message)

        errors: list[str] = []
        for source in sources:
            logger.info("Loading model {} on {} backend", source, backend.value)
            try:
                handle = await retry_with_backoff(
                    lambda source=source: asyncio.to_thread(self._open, source, backend),
                    attempts=self.attempts,
                    base_delay_s=self.base_delay_s,
                    label=f"loading {source}",
                    no_retry=(BackendFailure,),
                )
            except BackendFailure:
                raise
            except Exception as exc:
                logger.warning("Model source {} unavailable: {}", source, exc)
                errors.append(f"{source}: {exc}")
                continue
            logger.success("Model {} loaded using {}", source, handle.providers[0])
            return handle

        message = "All model sources failed: " + "; ".join(errors)
        raise ModelLoadFailure(message)
