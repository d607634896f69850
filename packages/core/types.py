"""Pydantic models for the wall tracking engine.

Everything that crosses a component boundary (snapshots from the depth
sensor, poses from the estimator, plane fits, tracked walls and the
measurements handed to the consumer) is described here.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── reference frames ─────────────────────────────────────────────────
DEPTH = "depth"
COLOR = "color"
DEVICE = "device"
WORLD = "start_of_service"


# ── tiny helpers ──────────────────────────────────────────────────────
class Vec3(BaseModel):
    """A 3-component vector (x, y, z) in metres."""

    x: float
    y: float
    z: float

    @classmethod
    def from_array(cls, values) -> Vec3:
        return cls(x=float(values[0]), y=float(values[1]), z=float(values[2]))

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


# ── point clouds ─────────────────────────────────────────────────────
class PointCloudSnapshot(BaseModel):
    """One depth capture: (N, 4) float32 points, a timestamp and a frame id.

    The fourth component of each point is padding (the sensor stores a
    confidence there) and is ignored by every geometric computation.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    points: np.ndarray
    timestamp: float = 0.0
    frame: str = DEPTH

    @field_validator("points", mode="before")
    @classmethod
    def _as_quadruplets(cls, value) -> np.ndarray:
        arr = np.array(value, dtype=np.float32)
        if arr.size == 0:
            arr = np.empty((0, 4), dtype=np.float32)
        if arr.ndim != 2 or arr.shape[1] not in (3, 4):
            raise ValueError(f"points must have shape (N, 4), got {arr.shape}")
        if arr.shape[1] == 3:
            arr = np.hstack([arr, np.ones((len(arr), 1), dtype=np.float32)])
        arr.flags.writeable = False
        return arr

    @classmethod
    def from_flat(
        cls, buffer: Sequence[float], timestamp: float = 0.0, frame: str = DEPTH,
    ) -> PointCloudSnapshot:
        """Build a snapshot from a flat ``[x, y, z, c, x, y, z, c, ...]`` buffer."""
        flat = np.asarray(buffer, dtype=np.float32).ravel()
        if flat.size % 4 != 0:
            raise ValueError(
                f"Flat point buffer length {flat.size} is not a multiple of 4"
            )
        return cls(points=flat.reshape(-1, 4), timestamp=timestamp, frame=frame)

    @classmethod
    def empty(cls, timestamp: float = 0.0) -> PointCloudSnapshot:
        return cls(points=np.empty((0, 4), dtype=np.float32), timestamp=timestamp)

    @property
    def xyz(self) -> np.ndarray:
        return self.points[:, :3]

    @property
    def is_empty(self) -> bool:
        return len(self.points) == 0

    def __len__(self) -> int:
        return len(self.points)


# ── plane / surface types ────────────────────────────────────────────
class PlaneModel(BaseModel):
    """Implicit plane ``a·x + b·y + c·z + d = 0``.

    The normal ``(a, b, c)`` is kept exactly as produced; it is not
    guaranteed to be unit length and is never re-normalised here.
    """

    a: float
    b: float
    c: float
    d: float

    @classmethod
    def from_coefficients(cls, coeffs) -> PlaneModel:
        return cls(a=float(coeffs[0]), b=float(coeffs[1]), c=float(coeffs[2]), d=float(coeffs[3]))

    @property
    def coefficients(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c, self.d], dtype=np.float64)

    @property
    def normal(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c], dtype=np.float64)


class PlaneFit(BaseModel):
    """Result of the single-point plane-fit primitive (sensor space)."""

    plane: PlaneModel
    intersection: Vec3


# ── poses ────────────────────────────────────────────────────────────
class PoseSample(BaseModel):
    """Translation + quaternion (x, y, z, w) of *target* expressed in *base*."""

    valid: bool = True
    timestamp: float = 0.0
    translation: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    @classmethod
    def invalid(cls, timestamp: float = 0.0) -> PoseSample:
        return cls(valid=False, timestamp=timestamp)


class TransformSample(BaseModel):
    """A 4×4 ``base_T_target`` matrix (maps target coordinates into base)."""

    valid: bool = True
    timestamp: float = 0.0
    matrix: list[list[float]] = Field(
        default_factory=lambda: np.eye(4).tolist()
    )

    @field_validator("matrix")
    @classmethod
    def _check_shape(cls, value: list[list[float]]) -> list[list[float]]:
        if np.asarray(value).shape != (4, 4):
            raise ValueError("transform matrix must be 4x4")
        return value

    @classmethod
    def invalid(cls, timestamp: float = 0.0) -> TransformSample:
        return cls(valid=False, timestamp=timestamp)

    def as_array(self) -> np.ndarray:
        return np.asarray(self.matrix, dtype=np.float64)


class CameraIntrinsics(BaseModel):
    """Pinhole intrinsics of the camera whose image defines the (u, v) rays."""

    width: int = 640
    height: int = 480
    fx: float = 520.0
    fy: float = 520.0
    cx: float = 320.0
    cy: float = 240.0


# ── tracking ─────────────────────────────────────────────────────────
class WallCandidate(BaseModel):
    """A fitted, world-transformed plane from one grid cell of one cycle."""

    plane: PlaneModel
    sensor_plane: PlaneModel
    inlier_count: int = 0
    u: float = 0.5
    v: float = 0.5
    order: int = 0
    intersection: Optional[Vec3] = None


class TrackedWall(BaseModel):
    """The last accepted wall, in world space."""

    plane: PlaneModel
    inlier_count: int = 0
    timestamp: float = 0.0
    intersection: Optional[Vec3] = None


class TrackDecision(str, Enum):
    ADOPTED = "adopted"
    MATCHED = "matched"
    REPLACED = "replaced"
    KEPT = "kept"
    NO_CANDIDATE = "no_candidate"


class WallMeasurement(BaseModel):
    """What the consumer receives once per cycle."""

    has_wall: bool
    distance: Optional[float] = None
    timestamp: float = 0.0
    decision: TrackDecision = TrackDecision.NO_CANDIDATE
    reason: Optional[str] = None
