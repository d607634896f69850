"""Cross-frame wall identity tracking with hysteresis."""

from __future__ import annotations

import logging
import threading
from enum import Enum

from packages.core.config import MatchPolicy
from packages.core.types import PlaneModel, TrackDecision, TrackedWall, WallCandidate
from packages.surface.distance import plane_distance

logger = logging.getLogger(__name__)


class TrackerState(str, Enum):
    NO_WALL = "no_wall"
    HAS_WALL = "has_wall"


def planes_match(
    saved: PlaneModel,
    candidate: PlaneModel,
    abc_threshold: float = 0.75,
    d_threshold: float = 0.2,
    policy: MatchPolicy = MatchPolicy.LITERAL,
) -> bool:
    """Return True if *candidate* is considered the same wall as *saved*.

    Under :attr:`MatchPolicy.LITERAL` the second threshold is applied to
    ``c`` again and the offset is ignored; :attr:`MatchPolicy.OFFSET`
    applies it to ``d``.
    """
    if not (
        abs(saved.a - candidate.a) < abc_threshold
        and abs(saved.b - candidate.b) < abc_threshold
        and abs(saved.c - candidate.c) < abc_threshold
    ):
        return False
    if policy is MatchPolicy.OFFSET:
        return abs(saved.d - candidate.d) < d_threshold
    return abs(saved.c - candidate.c) < d_threshold


class WallTracker:
    """Holds the single tracked wall and decides when to replace it.

    A matching candidate leaves the saved wall untouched; a non-matching
    one replaces it only when strictly closer to the device.
    """

    def __init__(
        self,
        abc_threshold: float = 0.75,
        d_threshold: float = 0.2,
        policy: MatchPolicy = MatchPolicy.LITERAL,
    ) -> None:
        self.abc_threshold = abc_threshold
        self.d_threshold = d_threshold
        self.policy = policy
        self._lock = threading.Lock()
        self._wall: TrackedWall | None = None

    @property
    def wall(self) -> TrackedWall | None:
        with self._lock:
            return self._wall

    @property
    def state(self) -> TrackerState:
        return TrackerState.HAS_WALL if self.wall is not None else TrackerState.NO_WALL

    def update(
        self,
        candidate: WallCandidate | None,
        device_position,
        timestamp: float = 0.0,
    ) -> TrackDecision:
        if candidate is None:
            return TrackDecision.NO_CANDIDATE

        with self._lock:
            accepted = TrackedWall(
                plane=candidate.plane,
                inlier_count=candidate.inlier_count,
                timestamp=timestamp,
                intersection=candidate.intersection,
            )
            if self._wall is None:
                self._wall = accepted
                logger.info("🧱 First wall acquired (%d inliers)", candidate.inlier_count)
                return TrackDecision.ADOPTED

            saved = self._wall
            if planes_match(
                saved.plane, candidate.plane,
                self.abc_threshold, self.d_threshold, self.policy,
            ):
                logger.info("Matching wall")
                return TrackDecision.MATCHED

            old_dist = plane_distance(saved.plane, device_position)
            new_dist = plane_distance(candidate.plane, device_position)
            if new_dist < old_dist:
                self._wall = accepted
                logger.info("New wall is closer (%.3f m < %.3f m) – replacing", new_dist, old_dist)
                return TrackDecision.REPLACED

            logger.info("New wall is farther (%.3f m ≥ %.3f m) – keeping current", new_dist, old_dist)
            return TrackDecision.KEPT
