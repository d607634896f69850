"""Load recorded depth frames into :class:`PointCloudSnapshot` objects.

Supported formats
-----------------
* **PLY** – via the ``plyfile`` library.  An optional ``confidence``
  vertex property fills the fourth component of each point.
* **E57** – via the ``pye57`` library (ASTM E2807 standard).  The optional
  ``intensity`` field fills the fourth component.

Points are expected in the depth (sensor) frame of the capture.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pye57
from plyfile import PlyData

from packages.core.types import DEPTH, PointCloudSnapshot

logger = logging.getLogger(__name__)


def _pack(xs, ys, zs, extra=None) -> np.ndarray:
    if extra is None:
        extra = np.ones(len(xs), dtype=np.float32)
    return np.column_stack((xs, ys, zs, extra)).astype(np.float32)


def load_ply(path: str | Path, timestamp: float = 0.0, frame: str = DEPTH) -> PointCloudSnapshot:
    """Read a binary or ASCII PLY depth frame."""
    ply = PlyData.read(str(path))
    vertex = ply["vertex"]
    prop_names = [p.name for p in vertex.properties]
    confidence = None
    if "confidence" in prop_names:
        confidence = np.asarray(vertex["confidence"], dtype=np.float32)
    points = _pack(
        np.asarray(vertex["x"], dtype=np.float32),
        np.asarray(vertex["y"], dtype=np.float32),
        np.asarray(vertex["z"], dtype=np.float32),
        confidence,
    )
    logger.info(f"📄 PLY frame loaded: {len(points):,} points (properties: {prop_names})")
    return PointCloudSnapshot(points=points, timestamp=timestamp, frame=frame)


def load_e57(
    path: str | Path,
    scan_index: int = 0,
    timestamp: float = 0.0,
    frame: str = DEPTH,
) -> PointCloudSnapshot:
    """Read one scan of an E57 file as a depth frame.

    Parameters
    ----------
    path : str | Path
        Path to the ``.e57`` file.
    scan_index : int, optional
        Which scan (``Data3D`` entry) to read when the file contains
        multiple scans.  Defaults to ``0`` (the first scan).
    """
    e57 = pye57.E57(str(path))
    try:
        raw = e57.read_scan_raw(scan_index)
        intensity = raw.get("intensity")
        points = _pack(
            np.asarray(raw["cartesianX"], dtype=np.float32),
            np.asarray(raw["cartesianY"], dtype=np.float32),
            np.asarray(raw["cartesianZ"], dtype=np.float32),
            None if intensity is None else np.asarray(intensity, dtype=np.float32),
        )
        logger.info(f"📄 E57 frame loaded: {len(points):,} points (scan {scan_index})")
        return PointCloudSnapshot(points=points, timestamp=timestamp, frame=frame)
    finally:
        e57.close()


def load_snapshot(path: str | Path, timestamp: float = 0.0, frame: str = DEPTH) -> PointCloudSnapshot:
    """Auto-detect format and return a snapshot.

    Raises ``ValueError`` for unsupported extensions.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext == ".ply":
        return load_ply(p, timestamp=timestamp, frame=frame)
    if ext == ".e57":
        return load_e57(p, timestamp=timestamp, frame=frame)
    raise ValueError(
        f"Unsupported point-cloud format '{ext}'. Supported: .ply, .e57"
    )
