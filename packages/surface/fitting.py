"""Single-point plane fitting: the surface under one image ray.

:class:`NearestPointPlaneFitter` projects the depth cloud into the camera
image, gathers the points that land near the requested normalised image
coordinate and fits a local plane to them.  The result is expressed in the
depth (sensor) frame together with the point where the ray meets it.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np
from scipy.spatial import cKDTree

from packages.core.types import (
    CameraIntrinsics,
    PlaneFit,
    PlaneModel,
    PointCloudSnapshot,
    PoseSample,
    Vec3,
)
from packages.surface.errors import PlaneFitError, SensorUnavailableError
from packages.surface.ransac import fit_plane_ransac, refine_plane
from packages.surface.transform import invert_transform, pose_to_matrix

logger = logging.getLogger(__name__)


class PlaneFitter(Protocol):
    def fit_near(
        self,
        snapshot: PointCloudSnapshot,
        u: float,
        v: float,
        display_rotation: int,
        camera_pose: PoseSample,
    ) -> PlaneFit:
        ...


def rotate_uv(u: float, v: float, display_rotation: int) -> tuple[float, float]:
    """Map display-normalised (u, v) into the camera's native image.

    *display_rotation* counts clockwise quarter turns of the display
    relative to the camera (0–3).
    """
    rotation = display_rotation % 4
    if rotation == 0:
        return u, v
    if rotation == 1:
        return v, 1.0 - u
    if rotation == 2:
        return 1.0 - u, 1.0 - v
    return 1.0 - v, u


class NearestPointPlaneFitter:
    """Fit the plane seen along one image ray of a depth snapshot.

    *camera_pose* passed to :meth:`fit_near` is ``depth_T_camera``: the
    camera's pose expressed in the depth frame.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics | None = None,
        *,
        search_radius_px: float = 24.0,
        min_points: int = 10,
        min_depth: float = 0.05,
        distance_threshold: float = 0.01,
        ransac_iterations: int = 100,
        seed: int | None = 0,
    ) -> None:
        self.intrinsics = intrinsics or CameraIntrinsics()
        self.search_radius_px = search_radius_px
        self.min_points = min_points
        self.min_depth = min_depth
        self.distance_threshold = distance_threshold
        self.ransac_iterations = ransac_iterations
        self.seed = seed

    def fit_near(
        self,
        snapshot: PointCloudSnapshot,
        u: float,
        v: float,
        display_rotation: int,
        camera_pose: PoseSample,
    ) -> PlaneFit:
        if snapshot.is_empty:
            raise SensorUnavailableError("point cloud is empty")
        if not camera_pose.valid:
            raise SensorUnavailableError("camera pose is invalid")

        k = self.intrinsics
        depth_T_camera = pose_to_matrix(camera_pose)
        camera_T_depth = invert_transform(depth_T_camera)

        pts_depth = snapshot.xyz.astype(np.float64)
        pts_cam = pts_depth @ camera_T_depth[:3, :3].T + camera_T_depth[:3, 3]
        in_front = pts_cam[:, 2] > self.min_depth
        if not in_front.any():
            raise PlaneFitError("no depth in front of the camera")
        pts_depth = pts_depth[in_front]
        pts_cam = pts_cam[in_front]

        pixels = np.column_stack((
            k.fx * pts_cam[:, 0] / pts_cam[:, 2] + k.cx,
            k.fy * pts_cam[:, 1] / pts_cam[:, 2] + k.cy,
        ))
        cu, cv = rotate_uv(u, v, display_rotation)
        target = np.array([cu * k.width, cv * k.height])

        tree = cKDTree(pixels)
        idx = tree.query_ball_point(target, self.search_radius_px)
        if len(idx) < self.min_points:
            raise PlaneFitError(
                f"only {len(idx)} points near ray (u={u:.2f}, v={v:.2f})"
            )
        local = pts_depth[idx]

        result = fit_plane_ransac(
            local,
            max_iterations=self.ransac_iterations,
            distance_threshold=self.distance_threshold,
            min_inliers=self.min_points,
            rng=np.random.default_rng(self.seed),
        )
        if result is None:
            raise PlaneFitError(f"no planar support near ray (u={u:.2f}, v={v:.2f})")
        _, inlier_mask = result
        coeffs = refine_plane(local[inlier_mask])

        # Normal points away from the sensor origin.
        if coeffs[3] > 0:
            coeffs = -coeffs

        origin = depth_T_camera[:3, 3]
        ray = depth_T_camera[:3, :3] @ np.array([
            (target[0] - k.cx) / k.fx,
            (target[1] - k.cy) / k.fy,
            1.0,
        ])
        denom = float(np.dot(coeffs[:3], ray))
        if abs(denom) < 1e-9:
            raise PlaneFitError("ray is parallel to the fitted plane")
        t = -(float(np.dot(coeffs[:3], origin)) + coeffs[3]) / denom
        if t <= 0:
            raise PlaneFitError("fitted plane lies behind the camera")

        return PlaneFit(
            plane=PlaneModel.from_coefficients(coeffs),
            intersection=Vec3.from_array(origin + t * ray),
        )
