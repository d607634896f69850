"""Dedicated update thread for event-driven hosts.

The sensor callback only drops the snapshot into the engine's cache and
raises a flag; the worker thread runs cycles over whatever is newest.
Several frames arriving during one cycle collapse into a single follow-up
cycle.
"""

from __future__ import annotations

import logging
import threading

from packages.core.types import PointCloudSnapshot
from packages.surface.engine import SurfaceDetectionEngine

logger = logging.getLogger(__name__)


class EngineWorker:
    def __init__(self, engine: SurfaceDetectionEngine, *, name: str = "wall-tracker") -> None:
        self.engine = engine
        self.name = name
        self._pending = threading.Event()
        self._stopping = threading.Event()
        self._idle = threading.Event()
        self._idle.set()
        self._lock = threading.Lock()
        self._rotation: int | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self.engine.connect()
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def submit(self, snapshot: PointCloudSnapshot, display_rotation: int | None = None) -> None:
        """Sensor callback: store the frame and wake the update thread."""
        self.engine.cache.update(snapshot)
        with self._lock:
            self._rotation = display_rotation
            self._idle.clear()
            self._pending.set()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every submitted frame has been processed."""
        return self._idle.wait(timeout)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stopping.set()
        self._pending.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Worker thread %s did not stop within %.1fs", self.name, timeout)
            else:
                self._thread = None
        self.engine.disconnect()

    def _run(self) -> None:
        while True:
            self._pending.wait()
            if self._stopping.is_set():
                break
            with self._lock:
                self._pending.clear()
                rotation = self._rotation
            self.engine.run_cycle(rotation)
            with self._lock:
                if not self._pending.is_set():
                    self._idle.set()
        self._idle.set()
