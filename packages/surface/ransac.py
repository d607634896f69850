"""RANSAC single-plane fitting in ``a·x + b·y + c·z + d = 0`` form."""

from __future__ import annotations

import numpy as np


def fit_plane_ransac(
    points: np.ndarray,
    *,
    max_iterations: int = 100,
    distance_threshold: float = 0.01,
    min_inliers: int = 3,
    rng: np.random.Generator | None = None,
) -> tuple[np.ndarray, np.ndarray] | None:
    """Fit a single plane to *points* using RANSAC.

    Returns ``(coefficients, inlier_mask)`` with a unit normal, or *None*
    if no plane with enough inliers is found.
    """
    rng = rng or np.random.default_rng()
    n = len(points)
    if n < 3:
        return None

    best_inliers: np.ndarray | None = None
    best_count = 0
    best_coeffs = np.zeros(4)

    for _ in range(max_iterations):
        idx = rng.choice(n, size=3, replace=False)
        p0, p1, p2 = points[idx]
        normal = np.cross(p1 - p0, p2 - p0)
        norm = np.linalg.norm(normal)
        if norm < 1e-12:
            continue
        normal /= norm
        d = -np.dot(normal, p0)

        inlier_mask = np.abs(points @ normal + d) < distance_threshold
        count = int(inlier_mask.sum())

        if count > best_count:
            best_count = count
            best_inliers = inlier_mask
            best_coeffs = np.append(normal, d)

    if best_count < min_inliers or best_inliers is None:
        return None

    return best_coeffs, best_inliers


def refine_plane(points: np.ndarray) -> np.ndarray:
    """Least-squares plane through *points* (SVD of the centred cloud)."""
    if len(points) < 3:
        raise ValueError("Need at least 3 points to define a plane")
    centroid = points.mean(axis=0)
    _, _, vt = np.linalg.svd(points - centroid)
    normal = vt[-1] / np.linalg.norm(vt[-1])
    return np.append(normal, -np.dot(normal, centroid))
