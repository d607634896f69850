"""Surface detection engine: one full wall-tracking cycle per depth frame.

A cycle reads the newest snapshot from the cache, fits a plane under each
grid ray, scores and transforms the fits into the world frame, selects a
wall, updates the tracker and publishes the device-to-wall distance.

The engine is driven either synchronously (``run_cycle`` from a polling
caller, or ``on_point_cloud`` from the sensor callback) or through
:class:`packages.surface.worker.EngineWorker` on a dedicated thread.
Cycles never overlap and ``disconnect`` waits for an in-flight cycle.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator

import numpy as np

from packages.core.config import EngineConfig
from packages.core.types import (
    DEPTH,
    DEVICE,
    WORLD,
    PointCloudSnapshot,
    TrackedWall,
    Vec3,
    WallCandidate,
    WallMeasurement,
)
from packages.surface.cache import PointCloudCache
from packages.surface.distance import DistancePublisher, MeasurementSink
from packages.surface.errors import SensorPermissionError
from packages.surface.fitting import PlaneFitter
from packages.surface.inliers import count_inliers
from packages.surface.poses import PoseEstimator
from packages.surface.sampler import GridPlaneSampler
from packages.surface.selector import select_wall
from packages.surface.tracker import WallTracker
from packages.surface.transform import (
    invert_transform,
    orientation_from,
    plane_to_world,
    transform_point,
)

logger = logging.getLogger(__name__)

WORLD_UP = (0.0, 0.0, 1.0)


class SurfaceDetectionEngine:
    """Detects and tracks the dominant wall in front of the device."""

    def __init__(
        self,
        poses: PoseEstimator,
        fitter: PlaneFitter,
        config: EngineConfig | None = None,
        *,
        sink: MeasurementSink | None = None,
        on_permission_error: Callable[[SensorPermissionError], None] | None = None,
        display_rotation: int = 0,
    ) -> None:
        self.config = config or EngineConfig()
        self.poses = poses
        self.display_rotation = display_rotation
        self.cache = PointCloudCache()
        self.tracker = WallTracker(
            abc_threshold=self.config.abc_match_threshold,
            d_threshold=self.config.d_match_threshold,
            policy=self.config.match_policy,
        )
        self.publisher = DistancePublisher(sink)
        self.sampler = GridPlaneSampler(
            fitter, poses, self.config, on_permission_error=self._permission_denied,
        )
        self._on_permission_error = on_permission_error
        self._permission_reported = False
        self._permission_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._connected = False
        self.cycles = 0

    # ── lifecycle ────────────────────────────────────────────────────
    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        with self._cycle_lock:
            self._connected = True
            with self._permission_lock:
                self._permission_reported = False
        logger.info("Surface detection engine connected (%d grid samples)", self.config.grid_size)

    def disconnect(self) -> None:
        """Stop accepting cycles; blocks until a running cycle has finished."""
        with self._cycle_lock:
            self._connected = False
            self.cache.clear()
        logger.info("Surface detection engine disconnected")

    # ── sensor callback ──────────────────────────────────────────────
    def on_point_cloud(
        self, snapshot: PointCloudSnapshot, display_rotation: int | None = None,
    ) -> WallMeasurement | None:
        """Store *snapshot* and run one cycle over it (when connected)."""
        self.cache.update(snapshot)
        if not self._connected:
            return None
        return self.run_cycle(display_rotation)

    # ── state accessors ──────────────────────────────────────────────
    @property
    def wall(self) -> TrackedWall | None:
        return self.tracker.wall

    @property
    def latest(self) -> WallMeasurement | None:
        return self.publisher.latest

    def placement(self) -> np.ndarray | None:
        """Placement matrix (world frame) for a proxy on the tracked wall."""
        wall = self.tracker.wall
        if wall is None or wall.intersection is None:
            return None
        return orientation_from(wall.intersection.to_array(), wall.plane.normal, WORLD_UP)

    # ── the cycle ────────────────────────────────────────────────────
    def run_cycle(self, display_rotation: int | None = None) -> WallMeasurement | None:
        """Run one cycle over the newest snapshot.

        *display_rotation* overrides the engine default for this cycle only.
        Returns *None* when the engine is disconnected.  No exception
        escapes: unexpected failures become a no-measurement result.
        """
        with self._cycle_lock:
            if not self._connected:
                logger.debug("Cycle abandoned: engine disconnected")
                return None
            snapshot = self.cache.latest()
            rotation = self.display_rotation if display_rotation is None else display_rotation
            self.cycles += 1
            try:
                return self._cycle(snapshot, rotation)
            except Exception as e:
                logger.exception("❌ Tracking cycle failed")
                return self.publisher.no_measurement(snapshot.timestamp, f"cycle failed: {e}")

    def _cycle(self, snapshot: PointCloudSnapshot, display_rotation: int) -> WallMeasurement:
        ts = snapshot.timestamp
        odom = self.poses.query_pose(ts, WORLD, DEVICE)
        if not odom.valid:
            logger.warning("No valid device pose at time %.3f, no measurement", ts)
            return self.publisher.no_measurement(ts, "device pose unavailable")
        position = odom.translation

        selected = select_wall(
            self._candidates(snapshot, display_rotation),
            vertical_threshold=self.config.vertical_threshold,
            min_inliers=self.config.min_inliers,
        )
        decision = self.tracker.update(selected, position, timestamp=ts)
        measurement = self.publisher.publish(
            self.tracker.wall, position, timestamp=ts, decision=decision,
        )
        if measurement.has_wall:
            logger.info("📏 Distance to wall: %.3f m (%s)", measurement.distance, decision.value)
        else:
            logger.warning("No wall measured yet")
        return measurement

    def _candidates(
        self, snapshot: PointCloudSnapshot, display_rotation: int,
    ) -> Iterator[WallCandidate]:
        transform = self.poses.query_transform(snapshot.timestamp, DEPTH, WORLD)
        if not transform.valid:
            logger.warning(
                "No valid depth->world transform at time %.3f, skipping grid", snapshot.timestamp,
            )
            return
        depth_T_world = transform.as_array()
        world_T_depth = invert_transform(depth_T_world)

        for sample in self.sampler.sample(snapshot, display_rotation):
            sensor_plane = sample.fit.plane
            intersection = transform_point(world_T_depth, sample.fit.intersection.to_array())
            yield WallCandidate(
                plane=plane_to_world(sensor_plane, depth_T_world),
                sensor_plane=sensor_plane,
                inlier_count=count_inliers(
                    snapshot.points, sensor_plane, self.config.inlier_epsilon,
                ),
                u=sample.u,
                v=sample.v,
                order=sample.order,
                intersection=Vec3.from_array(intersection),
            )

    def _permission_denied(self, error: SensorPermissionError) -> None:
        with self._permission_lock:
            if self._permission_reported:
                return
            self._permission_reported = True
        if self._on_permission_error is not None:
            self._on_permission_error(error)
