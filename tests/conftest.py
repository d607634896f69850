"""Shared test fixtures – fake sensor collaborators and synthetic clouds."""

from __future__ import annotations

import numpy as np
import pytest

from packages.core.types import (
    PlaneFit,
    PlaneModel,
    PointCloudSnapshot,
    PoseSample,
    TransformSample,
    Vec3,
)
from packages.surface.errors import PlaneFitError


def points_on_plane(
    coeffs,
    n: int = 40,
    extent: float = 1.0,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """*n* points lying exactly on ``a·x + b·y + c·z + d = 0``, packed (n, 4)."""
    rng = rng or np.random.default_rng(0)
    normal = np.asarray(coeffs[:3], dtype=np.float64)
    d = float(coeffs[3])
    raw = rng.uniform(-extent, extent, size=(n, 3))
    raw -= ((raw @ normal + d) / (normal @ normal))[:, None] * normal
    return np.hstack([raw, np.ones((n, 1))])


def snapshot_for(*planes, n: int = 40, timestamp: float = 0.0) -> PointCloudSnapshot:
    """Snapshot whose points are split across the given planes (*n* each)."""
    rng = np.random.default_rng(1)
    clouds = [points_on_plane(p, n=n, rng=rng) for p in planes]
    pts = np.vstack(clouds) if clouds else np.empty((0, 4))
    return PointCloudSnapshot(points=pts, timestamp=timestamp)


class FakePoses:
    """Identity frames everywhere; the device sits at *position*."""

    def __init__(self, position=(0.0, 0.0, 0.0)):
        self.position = tuple(position)
        self.odometry_valid = True
        self.transform_valid = True
        self.camera_valid = True
        self.matrix = np.eye(4)

    def query_transform(self, timestamp, base, target):
        if not self.transform_valid:
            return TransformSample.invalid(timestamp)
        return TransformSample(timestamp=timestamp, matrix=self.matrix.tolist())

    def query_pose(self, timestamp, base, target):
        if target == "device":
            if not self.odometry_valid:
                return PoseSample.invalid(timestamp)
            return PoseSample(timestamp=timestamp, translation=self.position)
        if not self.camera_valid:
            return PoseSample.invalid(timestamp)
        return PoseSample(timestamp=timestamp)


class ScriptedFitter:
    """Returns a preset plane per (u, v) cell; any other cell fails.

    Values may also be exception instances, which are raised.
    """

    def __init__(self, cells: dict | None = None):
        self.cells = cells or {}
        self.calls: list[tuple[float, float]] = []
        self.rotations: list[int] = []

    def fit_near(self, snapshot, u, v, display_rotation, camera_pose):
        self.calls.append((u, v))
        self.rotations.append(display_rotation)
        if snapshot.is_empty:
            raise PlaneFitError("empty cloud")
        result = self.cells.get((u, v))
        if result is None:
            raise PlaneFitError("nothing here")
        if isinstance(result, Exception):
            raise result
        return PlaneFit(
            plane=PlaneModel.from_coefficients(result),
            intersection=Vec3(x=0.0, y=0.0, z=1.0),
        )


@pytest.fixture()
def fake_poses() -> FakePoses:
    return FakePoses()


@pytest.fixture()
def flat_plane_points() -> np.ndarray:
    """A dense 50×50 grid on the plane z = 2 (sensor space), packed (N, 4)."""
    xs, ys = np.meshgrid(np.linspace(-1, 1, 50), np.linspace(-1, 1, 50))
    n = xs.size
    return np.column_stack(
        (xs.ravel(), ys.ravel(), np.full(n, 2.0), np.ones(n))
    ).astype(np.float32)
