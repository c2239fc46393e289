"""Connected / not-connected status from motor wire detections."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from visual_inspector.yolo.core.constants import CONNECTED_LABEL, NOT_CONNECTED_LABEL


if TYPE_CHECKING:
    from collections.abc import Iterable

    from visual_inspector.pipeline.types import Detection


class ConnectionState(Enum):
    CONNECTED = "connected"
    NOT_CONNECTED = "not_connected"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState
    confidence: float = 0.0
    detection: Detection | None = None


def resolve_connection_status(
    *detection_groups: Iterable[Detection],
    connected_label: str = CONNECTED_LABEL,
    not_connected_label: str = NOT_CONNECTED_LABEL,
) -> ConnectionStatus:
    """Decide the wiring status from one model or a connected/not-connected pair.

    The most confident detection carrying either label decides. An exact
    confidence tie between the two labels reports ``NOT_CONNECTED``.
    """
    best: dict[str, Detection] = {}
    for group in detection_groups:
        for det in group:
            if det.class_name not in (connected_label, not_connected_label):
                continue
            current = best.get(det.class_name)
            if current is None or det.confidence > current.confidence:
                best[det.class_name] = det

    connected = best.get(connected_label)
    not_connected = best.get(not_connected_label)
    if connected is None and not_connected is None:
        return ConnectionStatus(ConnectionState.UNKNOWN)
    if not_connected is None or (
        connected is not None and connected.confidence > not_connected.confidence
    ):
        return ConnectionStatus(
            ConnectionState.CONNECTED, connected.confidence, connected
        )
    return ConnectionStatus(
        ConnectionState.NOT_CONNECTED, not_connected.confidence, not_connected
    )
