"""Command line runner: camera or video in, logged detections out."""

from __future__ import annotations

import asyncio
import platform
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

import cv2
import onnxruntime as ort
from loguru import logger

from visual_inspector.pipeline.errors import BackendExhausted, InspectorError
from visual_inspector.pipeline.logging import configure_logging
from visual_inspector.pipeline.monitoring.power import BatteryWatcher
from visual_inspector.pipeline.monitoring.system import (
    SystemMonitor,
    probe_device_profile,
)
from visual_inspector.pipeline.types import ExecutionBackend
from visual_inspector.yolo.backend import BackendOptions, OnnxModelLoader
from visual_inspector.yolo.cli import parse_args
from visual_inspector.yolo.connection import resolve_connection_status
from visual_inspector.yolo.core.constants import MOTOR_WIRE_CONFIG, get_preset
from visual_inspector.yolo.detector import Detector, Frame
from visual_inspector.yolo.session import DetectionSession


if TYPE_CHECKING:
    import argparse
    from collections.abc import AsyncIterator

    from visual_inspector.pipeline.types import DetectionResult


LOG_INTERVAL_S = 2.0


@dataclass
class RunSummary:
    frames: int = 0
    inferences: int = 0
    detections: int = 0
    started: float = 0.0


def _open_capture(source: str) -> cv2.VideoCapture:
    target: int | str = int(source) if source.isdigit() else source
    return cv2.VideoCapture(target)


async def _read_frames(
    capture: cv2.VideoCapture, max_frames: int
) -> AsyncIterator[Frame]:
    count = 0
    while max_frames <= 0 or count < max_frames:
        ok, image = await asyncio.to_thread(capture.read)
        if not ok or image is None:
            logger.info("Frame source exhausted after {} frames", count)
            return
        count += 1
        yield Frame.from_array(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def _log_result(session: DetectionSession, result: DetectionResult) -> None:
    if session.detector.config.name == MOTOR_WIRE_CONFIG.name:
        status = resolve_connection_status(result.detections)
        logger.info(
            "Wire status: {} ({:.2f})", status.state.value, status.confidence
        )
        return
    for detection in result.detections:
        logger.info(
            "{} {:.2f} at ({:.0f}, {:.0f}, {:.0f}, {:.0f})",
            detection.class_name,
            detection.confidence,
            detection.x1,
            detection.y1,
            detection.x2,
            detection.y2,
        )


def _log_periodic_metrics(session: DetectionSession) -> None:
    stats = session.get_performance_stats()
    logger.info(
        "FPS {:.1f} | infer {:.1f}ms | skipped {:.0%} | mode {} | "
        "mem {:.0f}MB | tensors {} | health {} | backend {}",
        session.perf.frame_fps,
        stats.inference_ms,
        session.perf.skip_ratio,
        stats.mode.value,
        stats.memory_mb,
        stats.tensor_count,
        stats.health.value,
        stats.backend.value,
    )


def _log_summary(session: DetectionSession, summary: RunSummary) -> None:
    elapsed = max(time.perf_counter() - summary.started, 1e-9)
    logger.info("=" * 60)
    logger.info("SESSION SUMMARY")
    logger.info("=" * 60)
    logger.info(
        "Frames: {} in {:.1f}s ({:.1f} FPS)",
        summary.frames,
        elapsed,
        summary.frames / elapsed,
    )
    logger.info(
        "Inferences: {} | detections: {}", summary.inferences, summary.detections
    )
    logger.info("Mode changes: {}", session.scheduler.transitions)
    logger.info("Recoveries: {}", session.health.recoveries)
    averages = session.perf.average_timings()
    logger.info(
        "Avg timings: pre {:.1f}ms | infer {:.1f}ms | post {:.1f}ms",
        averages.preprocess,
        averages.inference,
        averages.postprocess,
    )


async def _run(args: argparse.Namespace) -> int:
    config = get_preset(args.preset)
    if args.model:
        config = replace(config, sources=tuple(args.model))

    profile = probe_device_profile()
    sys_monitor = SystemMonitor(gpu_device_id=args.gpu)
    loader = OnnxModelLoader(BackendOptions(device_id=args.gpu))
    backend = ExecutionBackend.FALLBACK if args.cpu else ExecutionBackend.ACCELERATED
    detector = Detector(config, loader, backend=backend)
    session = DetectionSession(
        detector,
        profile,
        system_monitor=sys_monitor,
        battery=BatteryWatcher(),
    )

    capture = _open_capture(args.source)
    if not capture.isOpened():
        logger.error("Failed to open frame source {}", args.source)
        sys_monitor.shutdown()
        return 1
    source_width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
    source_height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
    dest_width = args.dest_width or source_width
    dest_height = args.dest_height or source_height
    logger.info(
        "Source {}: {}x{} -> display {}x{}",
        args.source,
        source_width,
        source_height,
        dest_width,
        dest_height,
    )

    summary = RunSummary(started=time.perf_counter())
    exit_code = 0
    try:
        await session.start()
        logger.info("-" * 60)
        logger.info("Starting detection loop. Press Ctrl+C to quit.")
        logger.info("-" * 60)
        last_log_time = time.perf_counter()
        async for result in session.run(
            _read_frames(capture, args.max_frames), dest_width, dest_height
        ):
            summary.frames += 1
            if not result.skipped:
                summary.inferences += 1
                summary.detections += len(result.detections)
                _log_result(session, result)
            now = time.perf_counter()
            if now - last_log_time >= LOG_INTERVAL_S:
                _log_periodic_metrics(session)
                last_log_time = now
    except BackendExhausted as exc:
        logger.error("Inference backend exhausted: {}", exc)
        exit_code = 2
    except InspectorError as exc:
        logger.error("Failed to start session: {}", exc)
        exit_code = 1
    finally:
        _log_summary(session, summary)
        capture.release()
        await session.dispose()
        logger.info("Cleanup complete")
    return exit_code


def run_inspector(argv: list[str] | None = None) -> int:
    """Entry point for the visual inspector."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_dir, json_logs=args.json_logs)

    logger.info("=" * 60)
    logger.info("Visual Inspector")
    logger.info("=" * 60)
    logger.info("Platform: {} {}", platform.system(), platform.release())
    logger.info("Python: {}", platform.python_version())
    logger.info("OpenCV: {}", cv2.__version__)
    logger.info(
        "onnxruntime: {} ({})",
        ort.__version__,
        ", ".join(ort.get_available_providers()),
    )
    logger.info("Preset: {}", args.preset)

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == "__main__":
    raise SystemExit(run_inspector())
