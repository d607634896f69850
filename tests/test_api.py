"""Tests for the FastAPI host (apps/api/main.py)."""

from __future__ import annotations

import io

import numpy as np
import pytest
from fastapi.testclient import TestClient
from plyfile import PlyData, PlyElement

from apps.api.main import _state, app
from packages.core.types import COLOR, DEPTH, DEVICE, WORLD
from packages.surface.synthetic import SyntheticRoom, level_camera


@pytest.fixture()
def client():
    """Fresh test client with a fresh tracking session."""
    _state["engine"] = None
    _state["poses"] = None
    _state["notifications"] = []
    return TestClient(app)


def _push_poses(client: TestClient, world_T_depth: np.ndarray, timestamp: float) -> None:
    for base, target in ((WORLD, DEPTH), (WORLD, DEVICE)):
        r = client.post("/poses", json={
            "base": base, "target": target, "timestamp": timestamp,
            "matrix": world_T_depth.tolist(),
        })
        assert r.status_code == 200
    r = client.post("/poses", json={
        "base": DEPTH, "target": COLOR, "matrix": np.eye(4).tolist(), "static": True,
    })
    assert r.status_code == 200


def _frame(position, timestamp: float = 0.0):
    world_T_depth = level_camera(position, 0.0)
    return world_T_depth, SyntheticRoom().render(world_T_depth, timestamp=timestamp)


def _ply_bytes(points: np.ndarray) -> bytes:
    dtype = [("x", "f4"), ("y", "f4"), ("z", "f4")]
    structured = np.empty(len(points), dtype=dtype)
    structured["x"] = points[:, 0]
    structured["y"] = points[:, 1]
    structured["z"] = points[:, 2]
    buf = io.BytesIO()
    PlyData([PlyElement.describe(structured, "vertex")], text=False).write(buf)
    return buf.getvalue()


class TestHealth:
    def test_health(self, client: TestClient):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestBeforeFrames:
    def test_distance_404(self, client: TestClient):
        assert client.get("/distance").status_code == 404

    def test_wall_404(self, client: TestClient):
        assert client.get("/wall").status_code == 404

    def test_config(self, client: TestClient):
        r = client.get("/config")
        assert r.status_code == 200
        assert r.json()["vertical_threshold"] == 0.05


class TestPointClouds:
    def test_frame_produces_distance(self, client: TestClient):
        world_T_depth, snapshot = _frame((0.5, 0.0, 1.5), timestamp=1.0)
        _push_poses(client, world_T_depth, 1.0)

        r = client.post("/point-clouds", json={
            "timestamp": 1.0, "points": snapshot.points.ravel().tolist(),
        })
        assert r.status_code == 200
        data = r.json()
        assert data["has_wall"] is True
        assert data["distance"] == pytest.approx(2.0, abs=1e-3)
        assert data["decision"] == "adopted"

        r = client.get("/distance")
        assert r.json()["distance"] == pytest.approx(2.0, abs=1e-3)

        r = client.get("/wall")
        assert r.status_code == 200
        body = r.json()
        assert body["wall"]["plane"]["a"] == pytest.approx(1.0, abs=1e-3)
        assert len(body["placement"]) == 4

    def test_missing_pose_reports_no_measurement(self, client: TestClient):
        _, snapshot = _frame((0.0, 0.0, 1.5), timestamp=3.0)
        r = client.post("/point-clouds", json={
            "timestamp": 3.0, "points": snapshot.points.ravel().tolist(),
        })
        assert r.status_code == 200
        assert r.json()["has_wall"] is False
        assert r.json()["distance"] is None

    def test_bad_flat_buffer(self, client: TestClient):
        r = client.post("/point-clouds", json={"timestamp": 0.0, "points": [1.0, 2.0, 3.0]})
        assert r.status_code == 400

    def test_bad_pose_matrix(self, client: TestClient):
        r = client.post("/poses", json={"base": WORLD, "target": DEVICE, "matrix": [[1.0]]})
        assert r.status_code == 400

    def test_upload_ply_frame(self, client: TestClient):
        world_T_depth, snapshot = _frame((0.0, 0.0, 1.5), timestamp=2.0)
        _push_poses(client, world_T_depth, 2.0)
        r = client.post(
            "/point-clouds/file",
            params={"timestamp": 2.0},
            files={"file": ("frame.ply", _ply_bytes(snapshot.xyz), "application/octet-stream")},
        )
        assert r.status_code == 200
        assert r.json()["distance"] == pytest.approx(2.5, abs=1e-3)

    def test_upload_bad_format(self, client: TestClient):
        r = client.post("/point-clouds/file", files={"file": ("bad.xyz", b"junk", "application/octet-stream")})
        assert r.status_code == 400


class TestSession:
    def test_reset_drops_wall(self, client: TestClient):
        world_T_depth, snapshot = _frame((0.0, 0.0, 1.5), timestamp=1.0)
        _push_poses(client, world_T_depth, 1.0)
        client.post("/point-clouds", json={"timestamp": 1.0, "points": snapshot.points.ravel().tolist()})
        assert client.get("/wall").status_code == 200

        r = client.post("/session/reset", json={"config": {"grid_u": [0.5], "grid_v": [0.5]}})
        assert r.status_code == 200
        assert r.json()["grid_samples"] == 1
        assert client.get("/wall").status_code == 404

    def test_notifications_start_empty(self, client: TestClient):
        assert client.get("/notifications").json() == {"notifications": []}

    def test_display_rotation_per_frame(self, client: TestClient):
        # The grid is symmetric under a half turn, so the wall stays the same.
        world_T_depth, snapshot = _frame((0.0, 0.0, 1.5), timestamp=4.0)
        _push_poses(client, world_T_depth, 4.0)
        r = client.post("/point-clouds", json={
            "timestamp": 4.0, "points": snapshot.points.ravel().tolist(), "display_rotation": 2,
        })
        assert r.status_code == 200
        assert r.json()["distance"] == pytest.approx(2.5, abs=1e-3)
