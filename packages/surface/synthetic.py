"""Synthetic depth frames: a ray-cast box room for simulation and tests.

World frame is Z-up with the floor at ``z = 0``.  The depth camera uses the
usual optical convention (X right, Y down, Z forward) and coincides with
the colour camera and the device body.
"""

from __future__ import annotations

import math

import numpy as np

from packages.core.types import (
    COLOR,
    DEPTH,
    DEVICE,
    WORLD,
    CameraIntrinsics,
    PlaneModel,
    PointCloudSnapshot,
)
from packages.surface.poses import PoseBuffer


def level_camera(position, yaw: float) -> np.ndarray:
    """``world_T_depth`` for a camera held level, looking along *yaw* (radians)."""
    forward = np.array([math.cos(yaw), math.sin(yaw), 0.0])
    right = np.array([math.sin(yaw), -math.cos(yaw), 0.0])
    down = np.array([0.0, 0.0, -1.0])
    m = np.eye(4)
    m[:3, 0] = right
    m[:3, 1] = down
    m[:3, 2] = forward
    m[:3, 3] = np.asarray(position, dtype=np.float64)
    return m


class SyntheticRoom:
    """A box room, optionally with extra infinite planes (partitions)."""

    def __init__(
        self,
        x_range: tuple[float, float] = (-2.5, 2.5),
        y_range: tuple[float, float] = (-2.5, 2.5),
        height: float = 3.0,
        extra_planes: list[PlaneModel] | None = None,
    ) -> None:
        self.planes = [
            PlaneModel(a=1.0, b=0.0, c=0.0, d=-x_range[0]),
            PlaneModel(a=1.0, b=0.0, c=0.0, d=-x_range[1]),
            PlaneModel(a=0.0, b=1.0, c=0.0, d=-y_range[0]),
            PlaneModel(a=0.0, b=1.0, c=0.0, d=-y_range[1]),
            PlaneModel(a=0.0, b=0.0, c=1.0, d=0.0),
            PlaneModel(a=0.0, b=0.0, c=1.0, d=-height),
        ]
        self.planes.extend(extra_planes or [])

    def raycast(self, origin: np.ndarray, directions: np.ndarray) -> np.ndarray:
        """Distance along each direction to the nearest plane (``inf`` on a miss)."""
        best = np.full(len(directions), np.inf)
        for plane in self.planes:
            n = plane.normal
            denom = directions @ n
            with np.errstate(divide="ignore", invalid="ignore"):
                t = -(origin @ n + plane.d) / denom
            t[~np.isfinite(t) | (t <= 1e-6)] = np.inf
            best = np.minimum(best, t)
        return best

    def render(
        self,
        world_T_depth: np.ndarray,
        intrinsics: CameraIntrinsics | None = None,
        *,
        step_px: int = 8,
        timestamp: float = 0.0,
        noise: float = 0.0,
        max_range: float = 8.0,
        rng: np.random.Generator | None = None,
    ) -> PointCloudSnapshot:
        """Ray-cast one depth frame; points are returned in the depth frame."""
        k = intrinsics or CameraIntrinsics()
        us, vs = np.meshgrid(
            np.arange(step_px / 2, k.width, step_px),
            np.arange(step_px / 2, k.height, step_px),
        )
        rays = np.column_stack((
            (us.ravel() - k.cx) / k.fx,
            (vs.ravel() - k.cy) / k.fy,
            np.ones(us.size),
        ))
        rot = world_T_depth[:3, :3]
        depth = self.raycast(world_T_depth[:3, 3], rays @ rot.T)
        hit = np.isfinite(depth) & (depth < max_range)
        pts = rays[hit] * depth[hit, None]
        if noise > 0:
            rng = rng or np.random.default_rng(0)
            pts = pts + rng.normal(scale=noise, size=pts.shape)
        confidence = np.ones((len(pts), 1))
        return PointCloudSnapshot(
            points=np.hstack([pts, confidence]), timestamp=timestamp, frame=DEPTH,
        )


def publish_poses(poses: PoseBuffer, world_T_depth: np.ndarray, timestamp: float) -> None:
    """Feed the frame pairs the engine queries for a synthetic device pose."""
    poses.push(WORLD, DEPTH, timestamp, world_T_depth)
    poses.push(WORLD, DEVICE, timestamp, world_T_depth)
    poses.set_static(DEPTH, COLOR, np.eye(4))
