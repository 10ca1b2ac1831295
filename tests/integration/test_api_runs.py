from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from carwatch.api.routes import runs as runs_routes
from carwatch.app.main import create_app
from carwatch.core.config.settings import settings
from carwatch.storage.jsonl import JsonlEventStore


@pytest.fixture()
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(settings, "runs_dir", tmp_path)
    return TestClient(create_app())


def test_health(client: TestClient) -> None:
    r = client.get("/api/health")

    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_run_lifecycle(client: TestClient) -> None:
    r = client.post("/api/runs", json={"seed": 3, "run_spec": {"telemetry": {"max_ticks": 12}}})
    assert r.status_code == 200
    run_id = r.json()["run_id"]

    r = client.get(f"/api/runs/{run_id}")
    assert r.json()["status"] == "created"

    r = client.post(f"/api/runs/{run_id}/start")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "running"
    assert body["ticks"] == 12
    assert body["health_status"] in ("normal", "warning", "serious_problem")

    r = client.post(f"/api/runs/{run_id}/start")
    assert r.status_code == 409

    r = client.get(f"/api/runs/{run_id}/verdict")
    assert r.status_code == 200
    verdict = r.json()
    assert verdict["tick"] == 12
    assert verdict["status"] == body["health_status"]
    assert verdict["messages"]

    r = client.get(f"/api/runs/{run_id}/summary")
    assert r.status_code == 404

    r = client.post(f"/api/runs/{run_id}/stop")
    assert r.status_code == 200
    assert r.json()["status"] == "stopped"

    r = client.get(f"/api/runs/{run_id}/summary")
    assert r.status_code == 200
    summary = r.json()
    assert summary["ticks"] == 12
    assert summary["final_status"] == verdict["status"]

    r = client.get(f"/api/runs/{run_id}")
    details = r.json()
    assert details["status"] == "stopped"
    assert details["health_status"] == verdict["status"]
    assert details["artifacts"]["health_summary_json"].endswith("health_summary.json")

    assert run_id in {run["run_id"] for run in client.get("/api/runs").json()["runs"]}

    r = client.post(f"/api/runs/{run_id}/stop")
    assert r.status_code == 409


def test_failed_build_marks_run_as_error(client: TestClient) -> None:
    run_id = client.post(
        "/api/runs",
        json={"run_spec": {"telemetry": {"mode": "replay_jsonl", "replay": {"path": "/nonexistent.jsonl"}}}},
    ).json()["run_id"]

    r = client.post(f"/api/runs/{run_id}/start")
    assert r.status_code == 409

    details = client.get(f"/api/runs/{run_id}").json()
    assert details["status"] == "error"
    assert details["error_type"] == "FileNotFoundError"


def test_unknown_run_is_404(client: TestClient) -> None:
    assert client.get("/api/runs/nope").status_code == 404
    assert client.post("/api/runs/nope/start").status_code == 404
    assert client.get("/api/runs/nope/verdict").status_code == 404


def _gemini_replay_run(client: TestClient, replay: Path) -> str:
    spec = {
        "telemetry": {"mode": "replay_jsonl", "replay": {"path": str(replay)}, "max_ticks": 3},
        "anomaly": {"kind": "gemini"},
    }
    return client.post("/api/runs", json={"run_spec": spec}).json()["run_id"]


def _checked_row() -> str:
    return json.dumps(
        {
            "engine_temp_c": 90,
            "error_codes": [],
            "gear_smoothness": 5,
            "accel_sound_db": 60,
            "transmission_oil": 9,
            "engine_oil": 9,
            "coolant": 9,
            "leak_detected": False,
            "external_anomaly": {"flag": False, "details": "checked upstream"},
        }
    )


def test_stop_releases_event_log_and_anomaly_checker(
    client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "gemini_api_key", SecretStr("test-key"))
    replay = tmp_path / "replay.jsonl"
    replay.write_text(_checked_row() + "\n", encoding="utf-8")
    run_id = _gemini_replay_run(client, replay)

    assert client.post(f"/api/runs/{run_id}/start").status_code == 200
    handle = runs_routes._live[run_id]
    assert not handle.anomaly_checker.is_closed

    assert client.post(f"/api/runs/{run_id}/stop").status_code == 200

    assert run_id not in runs_routes._live
    assert handle.anomaly_checker.is_closed
    assert not handle.eventlog.store.is_open


def test_crashed_start_stops_and_closes_the_run(
    client: TestClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "gemini_api_key", SecretStr("test-key"))
    replay = tmp_path / "replay.jsonl"
    replay.write_text(_checked_row() + "\n{bad json\n", encoding="utf-8")
    run_id = _gemini_replay_run(client, replay)

    r = client.post(f"/api/runs/{run_id}/start")
    assert r.status_code == 409
    assert "line 2" in r.json()["detail"]

    assert run_id not in runs_routes._live
    details = client.get(f"/api/runs/{run_id}").json()
    assert details["status"] == "error"
    assert details["error_type"] == "ValueError"

    events_path = Path(details["artifacts"]["events_jsonl"])
    events = JsonlEventStore(path=events_path).iter_events()
    assert events[-2]["event_type"] == "system.engine_error"
    assert events[-1]["event_type"] == "system.run_stopped"
    assert events[-1]["outcome"] == "failed"

    # the run is not live, so there is nothing to stop
    assert client.post(f"/api/runs/{run_id}/stop").status_code == 409
