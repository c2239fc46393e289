"""Unit tests for motor wire connection status."""

from visual_inspector.pipeline.types import Detection
from visual_inspector.yolo.connection import ConnectionState, resolve_connection_status


def wire(label, confidence):
    return Detection(
        x1=0.0,
        y1=0.0,
        x2=10.0,
        y2=10.0,
        confidence=confidence,
        class_id=0 if label == "connected" else 1,
        class_name=label,
    )


class TestResolveConnectionStatus:
    """Tests for resolve_connection_status()."""

    def test_connected_wins_on_confidence(self):
        status = resolve_connection_status(
            [wire("connected", 0.8), wire("not_connected", 0.6)]
        )

        assert status.state is ConnectionState.CONNECTED
        assert status.confidence == 0.8
        assert status.detection.class_name == "connected"

    def test_not_connected_wins_on_confidence(self):
        status = resolve_connection_status(
            [wire("connected", 0.55), wire("not_connected", 0.9)]
        )
        assert status.state is ConnectionState.NOT_CONNECTED

    def test_tie_reports_not_connected(self):
        status = resolve_connection_status(
            [wire("connected", 0.7), wire("not_connected", 0.7)]
        )
        assert status.state is ConnectionState.NOT_CONNECTED

    def test_only_one_label_present(self):
        assert (
            resolve_connection_status([wire("connected", 0.6)]).state
            is ConnectionState.CONNECTED
        )
        assert (
            resolve_connection_status([wire("not_connected", 0.6)]).state
            is ConnectionState.NOT_CONNECTED
        )

    def test_nothing_detected(self):
        status = resolve_connection_status([])

        assert status.state is ConnectionState.UNKNOWN
        assert status.detection is None

    def test_separate_model_outputs(self):
        """Results from a connected model and a not-connected model combine."""
        status = resolve_connection_status(
            [wire("connected", 0.5), wire("connected", 0.95)],
            [wire("not_connected", 0.9)],
        )

        assert status.state is ConnectionState.CONNECTED
        assert status.confidence == 0.95

    def test_unrelated_labels_ignored(self):
        status = resolve_connection_status([wire("ESP32", 0.99)])
        assert status.state is ConnectionState.UNKNOWN

    def test_custom_labels(self):
        status = resolve_connection_status(
            [wire("plugged", 0.9)],
            connected_label="plugged",
            not_connected_label="loose",
        )
        assert status.state is ConnectionState.CONNECTED
