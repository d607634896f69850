"""Single-slot, most-recent-wins store for depth snapshots."""

from __future__ import annotations

import threading

from packages.core.types import PointCloudSnapshot


class PointCloudCache:
    """Bridges the sensor callback thread and the fitting cycle.

    Snapshots are immutable, so handing out the stored reference under the
    lock is enough for a reader to see either the old or the new one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: PointCloudSnapshot | None = None
        self._updates = 0

    def update(self, snapshot: PointCloudSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot
            self._updates += 1

    def latest(self) -> PointCloudSnapshot:
        with self._lock:
            snapshot = self._snapshot
        return snapshot if snapshot is not None else PointCloudSnapshot.empty()

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None

    @property
    def updates(self) -> int:
        with self._lock:
            return self._updates
