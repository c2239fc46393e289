from __future__ import annotations

import argparse

from visual_inspector.yolo.core.constants import PRESETS


def parse_args(argv: list | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Real-time visual inspection with adaptive YOLO inference",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  visual-inspector --preset esp32
  visual-inspector --preset motor_wire --source wires.mp4 --cpu
  visual-inspector --preset generic --model models/yolov8n.onnx --max-frames 300
		""",
    )

    parser.add_argument(
        "--preset",
        type=str,
        choices=sorted(PRESETS),
        default="esp32",
        help="Model configuration preset",
    )
    parser.add_argument(
        "--model",
        type=str,
        action="append",
        default=None,
        help="Model source to try (repeatable, tried in order); "
        "defaults to the preset's sources",
    )
    parser.add_argument(
        "--source",
        type=str,
        default="0",
        help="Camera index or path to a video file",
    )
    parser.add_argument("--dest-width", type=int, default=None)
    parser.add_argument("--dest-height", type=int, default=None)
    parser.add_argument("--gpu", type=int, default=0)
    parser.add_argument(
        "--cpu", action="store_true", help="Skip accelerated providers entirely"
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=0,
        help="Stop after this many frames (0 runs until the source ends)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for rotating log files (stdout only when omitted)",
    )
    parser.add_argument("--json-logs", action="store_true")

    return parser.parse_args(argv)
