"""Point-to-plane distance and the per-cycle measurement publisher."""

from __future__ import annotations

import logging
import math
from typing import Callable

from packages.core.types import PlaneModel, TrackDecision, TrackedWall, WallMeasurement

logger = logging.getLogger(__name__)

MeasurementSink = Callable[[WallMeasurement], None]


def plane_distance(plane: PlaneModel, position) -> float:
    """``|a·x + b·y + c·z + d| / sqrt(a² + b² + c²)``.

    Uses the plane's own (possibly non-unit) normal.
    """
    norm = math.sqrt(plane.a ** 2 + plane.b ** 2 + plane.c ** 2)
    if norm == 0.0:
        raise ValueError("plane has a zero normal")
    x, y, z = (float(position[0]), float(position[1]), float(position[2]))
    return abs(plane.a * x + plane.b * y + plane.c * z + plane.d) / norm


class DistancePublisher:
    """Turns the tracked wall into a :class:`WallMeasurement` for the consumer."""

    def __init__(self, sink: MeasurementSink | None = None) -> None:
        self.sink = sink
        self.latest: WallMeasurement | None = None

    def publish(
        self,
        wall: TrackedWall | None,
        position,
        *,
        timestamp: float,
        decision: TrackDecision,
    ) -> WallMeasurement:
        if wall is None:
            measurement = WallMeasurement(
                has_wall=False, timestamp=timestamp, decision=decision,
            )
        else:
            measurement = WallMeasurement(
                has_wall=True,
                distance=plane_distance(wall.plane, position),
                timestamp=timestamp,
                decision=decision,
            )
        return self.emit(measurement)

    def no_measurement(self, timestamp: float, reason: str) -> WallMeasurement:
        return self.emit(WallMeasurement(has_wall=False, timestamp=timestamp, reason=reason))

    def emit(self, measurement: WallMeasurement) -> WallMeasurement:
        self.latest = measurement
        if self.sink is not None:
            try:
                self.sink(measurement)
            except Exception:
                logger.exception("Measurement sink failed")
        return measurement
