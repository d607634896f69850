"""Wall selection: verticality filter plus largest inlier support."""

from __future__ import annotations

import logging
from typing import Iterable

from packages.core.types import WallCandidate

logger = logging.getLogger(__name__)


def is_vertical(candidate: WallCandidate, vertical_threshold: float) -> bool:
    """True when the world-space normal is nearly horizontal (a wall, not a floor)."""
    return abs(candidate.plane.c) < vertical_threshold


def select_wall(
    candidates: Iterable[WallCandidate],
    vertical_threshold: float = 0.05,
    min_inliers: int = 1,
) -> WallCandidate | None:
    """Pick the vertical candidate with the most inliers.

    Candidates are consumed in sampling order and only a strictly larger
    count displaces the current best, so the first one wins a tie.
    """
    best: WallCandidate | None = None
    rejected = 0
    for candidate in candidates:
        if not is_vertical(candidate, vertical_threshold):
            rejected += 1
            continue
        if candidate.inlier_count < min_inliers:
            continue
        if best is None or candidate.inlier_count > best.inlier_count:
            best = candidate

    if best is None:
        logger.debug("No wall candidate survived selection (%d non-vertical)", rejected)
    return best
