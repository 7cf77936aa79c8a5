from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import posebridge.api.routes.config as config_routes
from posebridge.api.main import app
from posebridge.api.services import state as engine_state
from posebridge.api.services.state import get_engine
from posebridge.core.config.settings import BackendSettings
from posebridge.core.tracking.pose_tracker import PoseTracker
from posebridge.core.types import FrameSummary, Track
from posebridge.core.video_sources.base import CameraDevice


class DummyEngine:
    def __init__(self, summary=None, error=None, emit_stale=True):
        self.settings = BackendSettings(emit_stale_tracks=emit_stale)
        self.tracker = PoseTracker()
        self._summary = summary
        self.last_error = error
        self.resets = 0

    def latest_summary(self):
        return self._summary

    def stream_fps(self):
        return 25.0

    def configure_tracking(self, **changes):
        return self.tracker.configure(**changes)

    def reset_tracking(self):
        self.resets += 1
        self.tracker.request_reset()

    def list_cameras(self, refresh=True):
        return [
            CameraDevice(index=0, label="Camera 1", device_id="0"),
            CameraDevice(index=1, label="Camera 2", device_id="1"),
        ]

    def change_camera(self, index):
        for device in self.list_cameras():
            if device.index == index:
                return device
        raise KeyError(index)


@pytest.fixture()
def engine():
    eng = DummyEngine()
    app.dependency_overrides[get_engine] = lambda: eng
    yield eng
    app.dependency_overrides.pop(get_engine, None)


def _summary(make_pose, frame_id=1):
    tracks = [
        Track(id=0, keypoints=make_pose(0.3, 0.5).keypoints, last_seen_at=1.0),
        Track(id=3, keypoints=make_pose(0.7, 0.5).keypoints, last_seen_at=0.5, missing_frames=2),
    ]
    return FrameSummary(frame_id=frame_id, timestamp=1.0, tracks=tracks, fps=15.0, frame_size=(640, 480))


def test_health_endpoint():
    client = TestClient(app)
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_lifespan_calls_stop_engine(monkeypatch: pytest.MonkeyPatch):
    called = {"n": 0}

    def _stop_engine():
        called["n"] += 1

    monkeypatch.setattr("posebridge.api.services.state.stop_engine", _stop_engine)

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200

    assert called["n"] == 1


def test_stats_with_summary(engine, make_pose):
    engine._summary = _summary(make_pose)
    engine.tracker.update([make_pose(0.5, 0.5)])

    res = TestClient(app).get("/stats")

    assert res.status_code == 200
    data = res.json()
    assert data["active_tracks"] == 2
    assert data["fps"] == 15.0
    assert data["stream_fps"] == 25.0
    assert data["next_id"] == 1
    assert data["error"] is None


def test_stats_without_summary_reports_error(engine):
    engine.last_error = "Failed"
    data = TestClient(app).get("/stats").json()
    assert data["active_tracks"] == 0
    assert data["error"] == "Failed"


def test_get_tracking_config(engine):
    data = TestClient(app).get("/tracking").json()
    assert data["distance_threshold"] == 0.5
    assert data["max_missing_frames"] == 5
    assert data["max_tracked_identities"] is None
    assert data["active_tracks"] == 0


def test_set_distance_threshold_is_deferred(engine):
    client = TestClient(app)
    res = client.post("/tracking/distance-threshold", json={"value": 0.25})
    assert res.status_code == 200
    assert res.json()["distance_threshold"] == 0.25

    # Still the old value until the next frame boundary.
    assert client.get("/tracking").json()["distance_threshold"] == 0.5
    engine.tracker.apply_pending()
    assert client.get("/tracking").json()["distance_threshold"] == 0.25


@pytest.mark.parametrize(
    "path,value",
    [
        ("/tracking/distance-threshold", 0),
        ("/tracking/distance-threshold", -0.5),
        ("/tracking/max-poses", 0),
        ("/tracking/max-missing-frames", -1),
    ],
)
def test_invalid_tracking_values_return_422(engine, path, value):
    res = TestClient(app).post(path, json={"value": value})
    assert res.status_code == 422
    engine.tracker.apply_pending()
    assert engine.tracker.config.distance_threshold == 0.5


def test_set_max_poses_and_missing_frames(engine):
    client = TestClient(app)
    assert client.post("/tracking/max-poses", json={"value": 2}).json()["max_tracked_identities"] == 2
    assert client.post("/tracking/max-missing-frames", json={"value": 0}).json()["max_missing_frames"] == 0


def test_reset_endpoint(engine, make_pose):
    engine.tracker.update([make_pose(0.5, 0.5)])
    res = TestClient(app).post("/tracking/reset")
    assert res.status_code == 200
    assert engine.resets == 1
    engine.tracker.apply_pending()
    assert engine.tracker.tracks == []
    assert engine.tracker.next_id == 0


def test_get_tracks(engine, make_pose):
    engine.tracker.update([make_pose(0.5, 0.5)])
    data = TestClient(app).get("/tracking/tracks").json()
    assert len(data) == 1
    assert data[0]["id"] == 0
    assert data[0]["missing_frames"] == 0
    assert len(data[0]["keypoints"]) == 17
    assert data[0]["keypoints"][0]["name"] == "nose"


def test_list_and_change_cameras(engine):
    client = TestClient(app)
    data = client.get("/cameras").json()
    assert data["cameras"]["1"] == {"label": "Camera 2", "deviceId": "1"}

    res = client.post("/cameras/1")
    assert res.status_code == 200
    assert res.json() == {"index": 1, "label": "Camera 2", "deviceId": "1"}

    assert client.post("/cameras/7").status_code == 404


def test_change_camera_unavailable_returns_503(engine, monkeypatch: pytest.MonkeyPatch):
    def _fail(index):
        raise RuntimeError("Cannot open webcam 1")

    monkeypatch.setattr(engine, "change_camera", _fail)
    res = TestClient(app).post("/cameras/1")
    assert res.status_code == 503
    assert "Cannot open webcam" in res.json()["detail"]


def test_get_config_endpoint(monkeypatch: pytest.MonkeyPatch):
    settings = BackendSettings(video_source="webcam", distance_threshold=0.4)
    monkeypatch.setattr(config_routes, "get_settings", lambda: settings)

    data = TestClient(app).get("/config").json()
    assert data["video_source"] == "webcam"
    assert data["distance_threshold"] == 0.4
    assert data["max_num_poses"] == 5


def test_update_config_calls_reload_settings(monkeypatch: pytest.MonkeyPatch):
    seen = {"data": None}

    def _reload_settings(data):
        seen["data"] = data
        return BackendSettings(**data)

    monkeypatch.setattr(config_routes, "reload_settings", _reload_settings)

    payload = {
        "video_source": "file",
        "video_path": "clip.mp4",
        "model_name": "yolo11n-pose.pt",
        "confidence": 0.5,
        "max_num_poses": 3,
    }
    res = TestClient(app).post("/config", json=payload)
    assert res.status_code == 200
    assert seen["data"]["max_num_poses"] == 3
    assert res.json()["video_source"] == "file"


def test_config_validation():
    payload = {
        "video_source": "webcam",
        "model_name": "yolo11n-pose.pt",
        "confidence": 1.2,
    }
    res = TestClient(app).post("/config", json=payload)
    assert res.status_code == 422


def test_config_rejects_unknown_source():
    payload = {"video_source": "rtsp", "model_name": "yolo11n-pose.pt", "confidence": 0.5}
    assert TestClient(app).post("/config", json=payload).status_code == 422


@pytest.fixture()
def ws_engine():
    previous = engine_state._engine
    eng = DummyEngine()
    engine_state._engine = eng
    yield eng
    engine_state._engine = previous


def test_pose_websocket_relays_one_message_per_track(ws_engine, make_pose):
    ws_engine._summary = _summary(make_pose, frame_id=7)
    client = TestClient(app)
    with client.websocket_connect("/stream/poses") as ws:
        first = ws.receive_json()
        second = ws.receive_json()

    assert first["type"] == "poseData"
    assert first["personId"] == 0
    assert first["frameId"] == 7
    assert len(first["keypoints"]) == 17
    assert set(first["keypoints"][0]) == {"x", "y", "score", "name"}
    assert second["personId"] == 3


def test_pose_websocket_skips_stale_tracks_when_disabled(ws_engine, make_pose):
    ws_engine.settings = BackendSettings(emit_stale_tracks=False)
    ws_engine._summary = _summary(make_pose, frame_id=2)
    client = TestClient(app)
    with client.websocket_connect("/stream/poses") as ws:
        first = ws.receive_json()
        ws.send_json({"type": "ping", "t": 1})
        reply = ws.receive_json()

    assert first["personId"] == 0
    # The stale track is not sent, so the next message is the control reply.
    assert reply["type"] == "pong"


def test_pose_websocket_accepts_control_messages(ws_engine):
    client = TestClient(app)
    with client.websocket_connect("/stream/poses") as ws:
        ws.send_json({"type": "setDistanceThreshold", "value": 0.2})
        reply = ws.receive_json()
        ws.send_json({"type": "setDistanceThreshold", "value": -1})
        error = ws.receive_json()
        ws.send_json({"type": "resetPersonId"})
        reset = ws.receive_json()

    assert reply == {"type": "config", "distance_threshold": 0.2}
    assert error["type"] == "error"
    assert reset == {"type": "reset"}
    assert ws_engine.resets == 1
