"""Frame transforms for planes and points, plus placement geometry.

Transforms follow the pose-estimator convention ``base_T_target``: the
4×4 matrix returned for the pair ``(base, target)`` maps homogeneous
coordinates expressed in *target* into *base*.
"""

from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation

from packages.core.types import PlaneModel, PoseSample


def plane_to_world(plane: PlaneModel, depth_T_world: np.ndarray) -> PlaneModel:
    """Express a sensor-space plane in the world frame.

    Plane coefficients are a covector: with ``depth_T_world`` mapping world
    points into the depth frame, a depth-space plane ``π`` becomes
    ``depth_T_worldᵀ · π`` in world space.  The transform itself, not its
    inverse, is transposed.
    """
    matrix = np.asarray(depth_T_world, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise ValueError(f"expected a 4x4 transform, got {matrix.shape}")
    return PlaneModel.from_coefficients(matrix.T @ plane.coefficients)


def pose_to_matrix(pose: PoseSample) -> np.ndarray:
    """4×4 homogeneous matrix from a translation + (x, y, z, w) quaternion."""
    m = np.eye(4)
    m[:3, :3] = Rotation.from_quat(pose.rotation).as_matrix()
    m[:3, 3] = pose.translation
    return m


def invert_transform(matrix: np.ndarray) -> np.ndarray:
    """Inverse of a rigid 4×4 transform."""
    m = np.asarray(matrix, dtype=np.float64)
    rot = m[:3, :3]
    inv = np.eye(4)
    inv[:3, :3] = rot.T
    inv[:3, 3] = -rot.T @ m[:3, 3]
    return inv


def transform_point(matrix: np.ndarray, point) -> np.ndarray:
    """Apply a 4×4 transform to a 3-D point."""
    homogeneous = np.append(np.asarray(point, dtype=np.float64)[:3], 1.0)
    return (np.asarray(matrix, dtype=np.float64) @ homogeneous)[:3]


def _normalize(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm < 1e-12:
        raise ValueError("cannot normalise a zero-length vector")
    return v / norm


def orientation_from(point, normal, up) -> np.ndarray:
    """Build a placement matrix from a point, a plane normal and an up hint.

    Right-handed basis with Z+ along the normal, X+ = up × Z and
    Y+ = Z × X; the translation is *point*.  Columns hold the axes.
    """
    z_axis = _normalize(np.asarray(normal, dtype=np.float64)[:3])
    x_axis = np.cross(np.asarray(up, dtype=np.float64)[:3], z_axis)
    if np.linalg.norm(x_axis) < 1e-9:
        raise ValueError("normal is parallel to the up vector")
    x_axis = _normalize(x_axis)
    y_axis = _normalize(np.cross(z_axis, x_axis))

    m = np.eye(4)
    m[:3, 0] = x_axis
    m[:3, 1] = y_axis
    m[:3, 2] = z_axis
    m[:3, 3] = np.asarray(point, dtype=np.float64)[:3]
    return m
