"""Pose estimator interface and a timestamped pose buffer implementing it.

The buffer is fed by the sensor delivery context (``push``) and queried by
the fitting cycle.  A query succeeds when a sample for the frame pair (or
its inverse) exists within ``max_age`` seconds of the requested time;
static extrinsics registered with ``set_static`` are valid at any time.
"""

from __future__ import annotations

import bisect
import logging
import threading
from typing import Protocol

import numpy as np
from scipy.spatial.transform import Rotation

from packages.core.types import PoseSample, TransformSample
from packages.surface.transform import invert_transform, pose_to_matrix

logger = logging.getLogger(__name__)


class PoseEstimator(Protocol):
    def query_transform(self, timestamp: float, base: str, target: str) -> TransformSample:
        ...

    def query_pose(self, timestamp: float, base: str, target: str) -> PoseSample:
        ...


def matrix_to_pose(matrix: np.ndarray, timestamp: float = 0.0) -> PoseSample:
    m = np.asarray(matrix, dtype=np.float64)
    quat = Rotation.from_matrix(m[:3, :3]).as_quat()
    return PoseSample(
        valid=True,
        timestamp=timestamp,
        translation=tuple(float(t) for t in m[:3, 3]),
        rotation=tuple(float(q) for q in quat),
    )


class PoseBuffer:
    """Thread-safe store of ``base_T_target`` samples keyed by frame pair."""

    def __init__(self, max_age: float = 0.1, max_history: int = 256) -> None:
        self.max_age = max_age
        self.max_history = max_history
        self._lock = threading.Lock()
        self._history: dict[tuple[str, str], tuple[list[float], list[np.ndarray]]] = {}
        self._static: dict[tuple[str, str], np.ndarray] = {}

    # ── writers ──────────────────────────────────────────────────────
    def push(self, base: str, target: str, timestamp: float, matrix: np.ndarray) -> None:
        m = np.asarray(matrix, dtype=np.float64)
        if m.shape != (4, 4):
            raise ValueError(f"expected a 4x4 transform, got {m.shape}")
        with self._lock:
            stamps, mats = self._history.setdefault((base, target), ([], []))
            idx = bisect.bisect_right(stamps, timestamp)
            stamps.insert(idx, timestamp)
            mats.insert(idx, m)
            if len(stamps) > self.max_history:
                del stamps[0]
                del mats[0]

    def push_pose(self, base: str, target: str, pose: PoseSample) -> None:
        if not pose.valid:
            logger.debug("Ignoring invalid pose %s -> %s at %.3f", base, target, pose.timestamp)
            return
        self.push(base, target, pose.timestamp, pose_to_matrix(pose))

    def set_static(self, base: str, target: str, matrix: np.ndarray) -> None:
        m = np.asarray(matrix, dtype=np.float64)
        if m.shape != (4, 4):
            raise ValueError(f"expected a 4x4 transform, got {m.shape}")
        with self._lock:
            self._static[(base, target)] = m

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    # ── readers ──────────────────────────────────────────────────────
    def _nearest(self, key: tuple[str, str], timestamp: float) -> np.ndarray | None:
        if key in self._static:
            return self._static[key]
        entry = self._history.get(key)
        if not entry or not entry[0]:
            return None
        stamps, mats = entry
        idx = bisect.bisect_left(stamps, timestamp)
        best = None
        best_gap = None
        for j in (idx - 1, idx):
            if 0 <= j < len(stamps):
                gap = abs(stamps[j] - timestamp)
                if best_gap is None or gap < best_gap:
                    best, best_gap = j, gap
        if best is None or best_gap > self.max_age:
            return None
        return mats[best]

    def _lookup(self, timestamp: float, base: str, target: str) -> np.ndarray | None:
        if base == target:
            return np.eye(4)
        with self._lock:
            direct = self._nearest((base, target), timestamp)
            if direct is not None:
                return direct.copy()
            inverse = self._nearest((target, base), timestamp)
        if inverse is not None:
            return invert_transform(inverse)
        return None

    def query_transform(self, timestamp: float, base: str, target: str) -> TransformSample:
        m = self._lookup(timestamp, base, target)
        if m is None:
            return TransformSample.invalid(timestamp)
        return TransformSample(valid=True, timestamp=timestamp, matrix=m.tolist())

    def query_pose(self, timestamp: float, base: str, target: str) -> PoseSample:
        m = self._lookup(timestamp, base, target)
        if m is None:
            return PoseSample.invalid(timestamp)
        return matrix_to_pose(m, timestamp)
