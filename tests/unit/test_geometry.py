"""Unit tests for model-to-destination box normalization."""

import pytest

from visual_inspector.pipeline.types import (
    BoxFilter,
    Candidate,
    ModelConfig,
    PerformanceMode,
)
from visual_inspector.yolo.core.geometry import (
    input_size_for_mode,
    normalize,
    passes_box_filter,
)


def make_candidate(cx, cy, w, h, score=0.9, best_class=0):
    return Candidate(
        center_x=cx,
        center_y=cy,
        width=w,
        height=h,
        class_scores=(score,),
        best_class=best_class,
        best_score=score,
    )


class TestNormalize:
    """Tests for normalize()."""

    def test_square_model_on_4_by_3_source(self):
        """A 640 model on a 640x480 source squashes the y axis by 0.75."""
        det = normalize(make_candidate(320, 320, 64, 64), 640, 640, 480, 640, 480)

        assert (det.x1, det.y1, det.x2, det.y2) == pytest.approx(
            (288.0, 216.0, 352.0, 264.0)
        )

    def test_destination_scaling(self):
        det = normalize(make_candidate(320, 320, 64, 64), 640, 640, 480, 1280, 960)

        assert (det.x1, det.y1, det.x2, det.y2) == pytest.approx(
            (576.0, 432.0, 704.0, 528.0)
        )

    def test_identity_round_trip(self):
        """Source equal to destination and model size keeps model coordinates."""
        det = normalize(make_candidate(100, 200, 50, 80), 640, 640, 640, 640, 640)

        assert (det.x1, det.y1, det.x2, det.y2) == pytest.approx(
            (75.0, 160.0, 125.0, 240.0)
        )

    def test_clamps_to_destination(self):
        det = normalize(make_candidate(10, 630, 100, 100), 640, 640, 640, 320, 320)

        assert det.x1 == 0.0
        assert det.y2 == 320.0
        assert 0.0 <= det.x1 <= det.x2 <= 320.0
        assert 0.0 <= det.y1 <= det.y2 <= 320.0

    def test_negative_size_uses_absolute_value(self):
        det = normalize(make_candidate(320, 320, -64, -64), 640, 640, 640, 640, 640)
        assert det.x1 < det.x2
        assert det.y1 < det.y2

    def test_box_filter_rejects_small_boxes(self):
        box_filter = BoxFilter(min_size=30.0)
        assert (
            normalize(
                make_candidate(320, 320, 20, 20),
                640, 640, 640, 640, 640,
                box_filter=box_filter,
            )
            is None
        )

    def test_box_filter_rejects_extreme_aspect(self):
        box_filter = BoxFilter(min_aspect=0.3, max_aspect=3.0)
        assert (
            normalize(
                make_candidate(320, 320, 400, 40),
                640, 640, 640, 640, 640,
                box_filter=box_filter,
            )
            is None
        )

    def test_box_filter_uses_unclamped_size(self):
        """A box cut by the frame edge is judged on its full size."""
        det = normalize(
            make_candidate(0, 320, 64, 64),
            640, 640, 640, 640, 640,
            box_filter=BoxFilter(min_size=40.0),
        )

        assert det is not None
        assert det.width == pytest.approx(32.0)

    def test_confidence_clamped_and_named(self):
        det = normalize(
            make_candidate(320, 320, 64, 64, score=1.2, best_class=1),
            640, 640, 640, 640, 640,
            class_names=("connected", "not_connected"),
        )

        assert det.confidence == 1.0
        assert det.class_id == 1
        assert det.class_name == "not_connected"

    def test_unknown_class_name_falls_back_to_id(self):
        det = normalize(
            make_candidate(320, 320, 64, 64, best_class=5), 640, 640, 640, 640, 640
        )
        assert det.class_name == "5"

    @pytest.mark.parametrize(
        "geometry",
        [
            (float("nan"), 100, 50, 50),
            (100, float("nan"), 50, 50),
            (100, 100, float("inf"), 50),
            (100, 100, 50, float("-inf")),
        ],
    )
    def test_non_finite_geometry_is_dropped(self, geometry):
        """NaN or infinite coordinates never produce a box, even unfiltered."""
        assert normalize(make_candidate(*geometry), 640, 640, 480, 640, 480) is None

    def test_rejects_non_positive_sizes(self):
        with pytest.raises(ValueError):
            normalize(make_candidate(1, 1, 1, 1), 0, 640, 640, 640, 640)


class TestBoxFilter:
    """Tests for passes_box_filter()."""

    @pytest.mark.parametrize(
        ("width", "height", "expected"),
        [
            (50, 50, True),
            (29, 50, False),
            (50, 29, False),
            (150, 50, True),
            (160, 50, False),
            (0, 0, False),
        ],
    )
    def test_limits(self, width, height, expected):
        box_filter = BoxFilter(min_size=30.0, min_aspect=0.3, max_aspect=3.0)
        assert passes_box_filter(width, height, box_filter) is expected

    def test_zero_height_with_no_size_limit(self):
        assert passes_box_filter(10.0, 0.0, BoxFilter()) is False


class TestInputSizeForMode:
    """Tests for input_size_for_mode()."""

    def test_reduced_size_in_power_save(self):
        config = ModelConfig(name="m", class_names=("a",), reduced_input_size=416)

        assert input_size_for_mode(config, PerformanceMode.HIGH) == 640
        assert input_size_for_mode(config, PerformanceMode.BALANCED) == 640
        assert input_size_for_mode(config, PerformanceMode.POWER_SAVE) == 416

    def test_without_reduced_size(self):
        config = ModelConfig(name="m", class_names=("a",), input_size=416)
        assert input_size_for_mode(config, PerformanceMode.POWER_SAVE) == 416
