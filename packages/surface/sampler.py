"""Grid plane sampling: one plane fit per (u, v) cell of a fixed grid."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, NamedTuple

from packages.core.config import EngineConfig
from packages.core.types import COLOR, DEPTH, PlaneFit, PointCloudSnapshot
from packages.surface.errors import (
    PlaneFitError,
    SensorPermissionError,
    SensorUnavailableError,
)
from packages.surface.fitting import PlaneFitter
from packages.surface.poses import PoseEstimator

logger = logging.getLogger(__name__)


class GridSample(NamedTuple):
    u: float
    v: float
    order: int
    fit: PlaneFit


class GridPlaneSampler:
    """Issues the configured grid of rays against a snapshot.

    Cells are scanned ``for u in grid_u: for v in grid_v``; that order is
    the tie-break order downstream and is kept when cells are fitted in
    parallel.  Any single cell may fail without affecting the others.
    """

    def __init__(
        self,
        fitter: PlaneFitter,
        poses: PoseEstimator,
        config: EngineConfig,
        *,
        on_permission_error: Callable[[SensorPermissionError], None] | None = None,
    ) -> None:
        self.fitter = fitter
        self.poses = poses
        self.config = config
        self.on_permission_error = on_permission_error

    def cells(self) -> list[tuple[int, float, float]]:
        cells = []
        for u in self.config.grid_u:
            for v in self.config.grid_v:
                cells.append((len(cells), u, v))
        return cells

    def _fit_cell(
        self, snapshot: PointCloudSnapshot, u: float, v: float, display_rotation: int,
    ) -> PlaneFit | None:
        try:
            camera_pose = self.poses.query_pose(snapshot.timestamp, DEPTH, COLOR)
            if not camera_pose.valid:
                raise SensorUnavailableError(
                    f"no depth->color pose at {snapshot.timestamp:.3f}"
                )
            return self.fitter.fit_near(snapshot, u, v, display_rotation, camera_pose)
        except (PlaneFitError, SensorUnavailableError) as e:
            logger.debug("Sample (u=%.2f, v=%.2f) skipped: %s", u, v, e)
        except SensorPermissionError as e:
            logger.error("Sensor permission denied while fitting (u=%.2f, v=%.2f): %s", u, v, e)
            if self.on_permission_error is not None:
                self.on_permission_error(e)
        except Exception:
            logger.exception("Sample (u=%.2f, v=%.2f) failed", u, v)
        return None

    def sample(
        self, snapshot: PointCloudSnapshot, display_rotation: int = 0,
    ) -> Iterator[GridSample]:
        """Yield successful fits in canonical grid order."""
        if snapshot.is_empty:
            logger.debug("Empty snapshot – every grid sample fails")
            return

        cells = self.cells()
        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                fits = list(pool.map(
                    lambda cell: self._fit_cell(snapshot, cell[1], cell[2], display_rotation),
                    cells,
                ))
        else:
            fits = (self._fit_cell(snapshot, u, v, display_rotation) for _, u, v in cells)

        for (order, u, v), fit in zip(cells, fits):
            if fit is not None:
                yield GridSample(u=u, v=v, order=order, fit=fit)
