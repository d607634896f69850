"""Inlier counting: the support metric used to rank wall candidates."""

from __future__ import annotations

import numpy as np

from packages.core.types import PlaneModel


def count_inliers(
    points: np.ndarray,
    plane: PlaneModel,
    epsilon: float = 0.001,
) -> int:
    """Count points with ``|a·x + b·y + c·z + d| < epsilon``.

    *points* may be (N, 3) or packed (N, 4) quadruplets; the fourth column
    is ignored.  The residual is the raw plane equation, so *epsilon* is in
    the units of the plane's own coefficients.
    """
    if len(points) == 0:
        return 0
    xyz = np.asarray(points)[:, :3].astype(np.float64)
    residual = xyz @ plane.normal + plane.d
    return int(np.count_nonzero(np.abs(residual) < epsilon))
