"""timeit demo for the detection postprocess chain."""

import timeit

from loguru import logger

from synthetic import make_output
from visual_inspector.yolo.core.constants import GENERIC_OBJECTS_CONFIG
from visual_inspector.yolo.detector import postprocess


OUTPUT = make_output()


def run() -> None:
    """Postprocess one synthetic frame for timing."""
    postprocess(OUTPUT, GENERIC_OBJECTS_CONFIG, 640, (1280, 720), (1280, 720))


if __name__ == "__main__":
    duration = timeit.timeit("run()", setup="from __main__ import run", number=20)
    avg = duration / 20
    logger.info("Average postprocess time over 20 runs: {:.2f} ms", avg * 1000)
