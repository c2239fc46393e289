"""cProfile demo for the detection postprocess chain."""

import cProfile
import pstats

from synthetic import make_output
from visual_inspector.yolo.core.constants import GENERIC_OBJECTS_CONFIG
from visual_inspector.yolo.detector import postprocess


def main() -> None:
    """Postprocess a batch of synthetic frames for profiling."""
    for seed in range(10):
        postprocess(
            make_output(seed=seed),
            GENERIC_OBJECTS_CONFIG,
            640,
            (1280, 720),
            (1280, 720),
        )


if __name__ == "__main__":
    profiler = cProfile.Profile()
    profiler.enable()
    main()
    profiler.disable()
    stats = pstats.Stats(profiler)
    stats.sort_stats(pstats.SortKey.CUMULATIVE).print_stats(20)
