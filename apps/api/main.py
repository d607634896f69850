"""FastAPI host for the wall tracker.

The sensor side pushes poses and depth frames; every frame runs one
tracking cycle and the resulting measurement is broadcast to whoever polls
``/distance``.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

import numpy as np
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel as PydanticBaseModel

from packages.core.config import EngineConfig
from packages.core.types import CameraIntrinsics, PointCloudSnapshot, WallMeasurement
from packages.surface.engine import SurfaceDetectionEngine
from packages.surface.errors import SensorPermissionError
from packages.surface.fitting import NearestPointPlaneFitter
from packages.surface.loader import load_snapshot
from packages.surface.poses import PoseBuffer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wall Tracker API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── In-memory session (single device) ────────────────────────────────
_state: dict = {
    "engine": None,        # SurfaceDetectionEngine
    "poses": None,         # PoseBuffer
    "notifications": [],   # one-shot host notifications
}


def _notify_permission(error: SensorPermissionError) -> None:
    _state["notifications"].append(f"Sensor permission denied: {error}")


def _new_session(
    config: EngineConfig | None = None,
    intrinsics: CameraIntrinsics | None = None,
) -> SurfaceDetectionEngine:
    old = _state["engine"]
    if old is not None:
        old.disconnect()
    poses = PoseBuffer()
    engine = SurfaceDetectionEngine(
        poses,
        NearestPointPlaneFitter(intrinsics),
        config,
        on_permission_error=_notify_permission,
    )
    engine.connect()
    _state["engine"] = engine
    _state["poses"] = poses
    _state["notifications"] = []
    return engine


def _engine() -> SurfaceDetectionEngine:
    if _state["engine"] is None:
        return _new_session()
    return _state["engine"]


@app.get("/health")
def health():
    return {"status": "ok"}


class SessionRequest(PydanticBaseModel):
    """Body for starting a new tracking session."""
    config: EngineConfig = EngineConfig()
    intrinsics: CameraIntrinsics = CameraIntrinsics()


@app.post("/session/reset")
def reset_session(req: Optional[SessionRequest] = None):
    """Drop the tracked wall and start over with a fresh engine."""
    req = req or SessionRequest()
    engine = _new_session(req.config, req.intrinsics)
    logger.info(f"🔄 New tracking session ({engine.config.grid_size} grid samples)")
    return {"status": "reset", "grid_samples": engine.config.grid_size}


@app.get("/config")
def get_config():
    return _engine().config


class PoseUpdate(PydanticBaseModel):
    """A ``base_T_target`` sample pushed by the sensor side."""
    base: str
    target: str
    timestamp: float = 0.0
    matrix: list[list[float]]  # 4×4, row-major
    static: bool = False


@app.post("/poses")
def push_pose(update: PoseUpdate):
    _engine()
    matrix = np.asarray(update.matrix, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise HTTPException(400, f"matrix must be 4x4, got {list(matrix.shape)}")
    poses: PoseBuffer = _state["poses"]
    if update.static:
        poses.set_static(update.base, update.target, matrix)
    else:
        poses.push(update.base, update.target, update.timestamp, matrix)
    return {"status": "ok"}


class PointCloudUpload(PydanticBaseModel):
    """Flat ``[x, y, z, c, ...]`` quadruplets in the depth frame."""
    timestamp: float
    points: list[float]
    display_rotation: Optional[int] = None


def _run(snapshot: PointCloudSnapshot, display_rotation: Optional[int] = None) -> WallMeasurement:
    measurement = _engine().on_point_cloud(snapshot, display_rotation)
    if measurement is None:
        raise HTTPException(409, "Tracking session is disconnected")
    return measurement


@app.post("/point-clouds", response_model=WallMeasurement)
def push_point_cloud(upload: PointCloudUpload):
    try:
        snapshot = PointCloudSnapshot.from_flat(upload.points, timestamp=upload.timestamp)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _run(snapshot, upload.display_rotation)


@app.post("/point-clouds/file", response_model=WallMeasurement)
async def upload_point_cloud(
    file: UploadFile = File(...),
    timestamp: float = 0.0,
    display_rotation: Optional[int] = None,
):
    """Upload a recorded depth frame (PLY or E57) and run a cycle on it."""
    if not file.filename:
        raise HTTPException(400, "No filename provided")

    suffix = Path(file.filename).suffix.lower()
    if suffix not in (".ply", ".e57"):
        raise HTTPException(400, f"Unsupported format '{suffix}'. Use .ply or .e57")

    logger.info(f"📥 Receiving frame: {file.filename}")
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        shutil.copyfileobj(file.file, tmp)
        tmp_path = Path(tmp.name)

    try:
        snapshot = load_snapshot(tmp_path, timestamp=timestamp)
    except Exception as e:
        logger.exception("❌ Loading frame failed")
        raise HTTPException(400, f"Could not read frame: {e}")
    finally:
        tmp_path.unlink(missing_ok=True)
    return _run(snapshot, display_rotation)


@app.get("/distance", response_model=WallMeasurement)
def get_distance():
    """Latest published measurement."""
    latest = _engine().latest
    if latest is None:
        raise HTTPException(404, "No frame processed yet")
    return latest


@app.get("/wall")
def get_wall():
    """The tracked wall (world frame) plus its placement matrix."""
    engine = _engine()
    wall = engine.wall
    if wall is None:
        raise HTTPException(404, "No wall tracked yet")
    placement = engine.placement()
    return {
        "wall": wall.model_dump(),
        "placement": placement.tolist() if placement is not None else None,
    }


@app.get("/notifications")
def get_notifications():
    """Drain pending one-shot notifications (e.g. permission failures)."""
    pending = list(_state["notifications"])
    _state["notifications"].clear()
    return {"notifications": pending}
