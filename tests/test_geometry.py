"""Tests for inlier scoring, frame transforms and point-to-plane distance."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from packages.core.types import PlaneModel, PoseSample
from packages.surface.distance import plane_distance
from packages.surface.inliers import count_inliers
from packages.surface.transform import (
    invert_transform,
    orientation_from,
    plane_to_world,
    pose_to_matrix,
    transform_point,
)


def _random_rigid(seed: int) -> np.ndarray:
    rng = np.random.default_rng(seed)
    m = np.eye(4)
    m[:3, :3] = Rotation.random(random_state=seed).as_matrix()
    m[:3, 3] = rng.uniform(-3, 3, size=3)
    return m


class TestCountInliers:
    def test_exact_plane_counts_every_point(self, flat_plane_points: np.ndarray):
        plane = PlaneModel(a=0.0, b=0.0, c=1.0, d=-2.0)
        assert count_inliers(flat_plane_points, plane, 0.001) == len(flat_plane_points)

    def test_offset_plane_counts_nothing(self, flat_plane_points: np.ndarray):
        plane = PlaneModel(a=0.0, b=0.0, c=1.0, d=-2.01)
        assert count_inliers(flat_plane_points, plane, 0.001) == 0

    def test_accepts_xyz_arrays(self, flat_plane_points: np.ndarray):
        plane = PlaneModel(a=0.0, b=0.0, c=1.0, d=-2.0)
        assert count_inliers(flat_plane_points[:, :3], plane) == len(flat_plane_points)

    def test_empty_cloud(self):
        assert count_inliers(np.empty((0, 4)), PlaneModel(a=1, b=0, c=0, d=0)) == 0


class TestPlaneToWorld:
    def test_round_trip_with_inverse(self):
        plane = PlaneModel(a=0.3, b=-0.8, c=0.52, d=-1.7)
        for seed in range(5):
            m = _random_rigid(seed)
            back = plane_to_world(plane_to_world(plane, m), invert_transform(m))
            np.testing.assert_allclose(back.coefficients, plane.coefficients, atol=1e-9)

    def test_transformed_points_stay_on_plane(self):
        # depth_T_world maps world points into depth; a depth-space point p
        # lies at world_T_depth · p, which must satisfy the world plane.
        depth_T_world = _random_rigid(7)
        world_T_depth = invert_transform(depth_T_world)
        sensor = PlaneModel(a=0.0, b=0.0, c=1.0, d=-2.5)
        world = plane_to_world(sensor, depth_T_world)
        for p in ([0, 0, 2.5], [1, -1, 2.5], [-0.4, 2.0, 2.5]):
            q = transform_point(world_T_depth, p)
            assert abs(world.normal @ q + world.d) < 1e-9

    def test_uses_transpose_not_transform(self):
        m = _random_rigid(3)
        plane = PlaneModel(a=0.0, b=1.0, c=0.0, d=-1.0)
        world = plane_to_world(plane, m)
        np.testing.assert_allclose(world.coefficients, m.T @ plane.coefficients)
        assert not np.allclose(world.coefficients, m @ plane.coefficients)

    def test_does_not_renormalise(self):
        plane = PlaneModel(a=0.0, b=0.0, c=3.0, d=-6.0)
        world = plane_to_world(plane, np.eye(4))
        assert world.c == 3.0

    def test_rejects_bad_shape(self):
        with pytest.raises(ValueError):
            plane_to_world(PlaneModel(a=1, b=0, c=0, d=0), np.eye(3))


class TestPoseToMatrix:
    def test_identity(self):
        np.testing.assert_allclose(pose_to_matrix(PoseSample()), np.eye(4))

    def test_quarter_turn_about_z(self):
        pose = PoseSample(translation=(1.0, 2.0, 3.0), rotation=(0.0, 0.0, np.sqrt(0.5), np.sqrt(0.5)))
        m = pose_to_matrix(pose)
        np.testing.assert_allclose(transform_point(m, [1, 0, 0]), [1.0, 3.0, 3.0], atol=1e-12)


class TestOrientationFrom:
    def test_right_handed_basis(self):
        m = orientation_from([1.0, 2.0, 3.0], [2.0, 0.0, 0.0], [0.0, 0.0, 1.0])
        rot = m[:3, :3]
        np.testing.assert_allclose(rot.T @ rot, np.eye(3), atol=1e-12)
        assert np.linalg.det(rot) == pytest.approx(1.0)
        np.testing.assert_allclose(m[:3, 2], [1.0, 0.0, 0.0])
        np.testing.assert_allclose(m[:3, 0], np.cross([0, 0, 1], [1, 0, 0]))
        np.testing.assert_allclose(m[:3, 3], [1.0, 2.0, 3.0])

    def test_parallel_up_raises(self):
        with pytest.raises(ValueError):
            orientation_from([0, 0, 0], [0, 0, 1], [0, 0, 1])


class TestPlaneDistance:
    def test_example_wall(self):
        plane = PlaneModel(a=0.99, b=0.0, c=0.01, d=-2.0)
        assert plane_distance(plane, (0, 0, 0)) == pytest.approx(2.0 / np.hypot(0.99, 0.01))
        assert plane_distance(plane, (0, 0, 0)) == pytest.approx(2.02, abs=1e-2)

    @pytest.mark.parametrize("scale", [0.5, -2.0, 1e3])
    def test_scale_invariant(self, scale: float):
        plane = PlaneModel(a=0.3, b=-0.4, c=0.02, d=1.5)
        scaled = PlaneModel.from_coefficients(plane.coefficients * scale)
        point = (0.7, -1.1, 2.3)
        assert plane_distance(scaled, point) == pytest.approx(plane_distance(plane, point))

    def test_zero_normal(self):
        with pytest.raises(ValueError):
            plane_distance(PlaneModel(a=0, b=0, c=0, d=1), (0, 0, 0))
