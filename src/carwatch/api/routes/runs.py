from __future__ import annotations

import json
from datetime import datetime, timezone
from threading import Lock
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from carwatch.core.config.settings import settings
from carwatch.core.run.artifacts import RunArtifacts, artifacts_for
from carwatch.core.run.assembly import RunHandle
from carwatch.core.run.factory import RunFactory
from carwatch.core.run.manager import RunManager
from carwatch.core.run.persist import persist_health_summary
from carwatch.core.run.registry import RunRegistry, RunStatus
from carwatch.core.run.spec import RunSpec
from carwatch.detection.models import HealthStatus, Severity

log = structlog.get_logger()

router = APIRouter(tags=["runs"])

_registry = RunRegistry()

# live handles of this process only
_live_lock = Lock()
_live: dict[str, RunHandle] = {}


# =========================
# Schemas
# =========================

class CreateRunRequest(BaseModel):
    seed: int | None = Field(default=None, description="Simulator seed override")
    run_spec: RunSpec | None = Field(default=None, description="RunSpec override")


class CreateRunResponse(BaseModel):
    run_id: str


class RunStateResponse(BaseModel):
    run_id: str
    status: RunStatus
    ticks: int
    health_status: HealthStatus | None = None


class RunDetailsResponse(BaseModel):
    run_id: str
    status: RunStatus
    created_at_utc: datetime
    updated_at_utc: datetime
    run_dir: str
    artifacts: dict[str, str]
    health_status: HealthStatus | None = None
    error_type: str | None = None
    error_message: str | None = None


class RunsListResponse(BaseModel):
    runs: list[RunDetailsResponse]


class VerdictMessageOut(BaseModel):
    severity: Severity
    text: str
    rule: str | None = None


class VerdictResponse(BaseModel):
    run_id: str
    tick: int
    status: HealthStatus
    details: str
    messages: list[VerdictMessageOut]


# =========================
# Helpers
# =========================

def _require_run_dir(run_id: str) -> RunArtifacts:
    try:
        art = artifacts_for(runs_dir=settings.runs_dir, run_id=run_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="run not found")
    if not art.run_dir.exists():
        raise HTTPException(status_code=404, detail="run not found")
    return art


def _fail(run_id: str, exc: Exception, detail: str) -> HTTPException:
    _registry.mark_error(run_id=run_id, error_type=type(exc).__name__, error_message=str(exc))
    log.warning("run.failed", run_id=run_id, error_type=type(exc).__name__, error=str(exc))
    return HTTPException(status_code=409, detail=detail)


def _details(run_id: str, art: RunArtifacts) -> RunDetailsResponse:
    rec = _registry.get(run_id=run_id)
    if rec is None:
        created = datetime.fromtimestamp(art.run_dir.stat().st_mtime, tz=timezone.utc)
        return RunDetailsResponse(
            run_id=run_id,
            status="created",
            created_at_utc=created,
            updated_at_utc=created,
            run_dir=str(art.run_dir),
            artifacts=art.as_dict(),
        )

    return RunDetailsResponse(
        run_id=run_id,
        status=rec.status,
        created_at_utc=rec.created_at_utc,
        updated_at_utc=rec.updated_at_utc,
        run_dir=str(art.run_dir),
        artifacts=art.as_dict(),
        health_status=rec.health_status,
        error_type=rec.error_type,
        error_message=rec.error_message,
    )


# =========================
# Routes
# =========================

@router.post("/runs", response_model=CreateRunResponse)
def create_run(payload: CreateRunRequest) -> CreateRunResponse:
    seed = payload.seed if payload.seed is not None else settings.default_seed

    run = RunManager(settings.runs_dir).create_run(seed=seed, config_snapshot=settings.model_dump())
    _registry.upsert_created(run)

    spec = payload.run_spec if payload.run_spec is not None else RunSpec()
    if spec.seed is None:
        spec.seed = seed

    RunFactory(runs_dir=settings.runs_dir).save_spec(run_id=run.run_id, spec=spec)
    return CreateRunResponse(run_id=run.run_id)


@router.post("/runs/{run_id}/start", response_model=RunStateResponse)
def start_run(run_id: str) -> RunStateResponse:
    _require_run_dir(run_id)
    factory = RunFactory(runs_dir=settings.runs_dir)

    with _live_lock:
        handle = _live.get(run_id)
        if handle is None:
            try:
                spec = factory.load_spec(run_id=run_id)
            except Exception as e:
                raise _fail(run_id, e, f"failed to load RunSpec: {e}")

            try:
                handle = factory.build(run_id=run_id, spec=spec)
            except Exception as e:
                raise _fail(run_id, e, f"failed to build run: {e}")

            _live[run_id] = handle

    if handle.state.is_running:
        raise HTTPException(status_code=409, detail="run already running")

    try:
        # the tick driver runs every tick inside start(); a crash stops and closes the run
        handle.start()
    except Exception as e:
        with _live_lock:
            _live.pop(run_id, None)
        raise _fail(run_id, e, str(e))

    _registry.mark_running(run_id=run_id)
    latest = handle.monitor.latest
    if latest is not None:
        _registry.set_health(run_id=run_id, health_status=latest.status)

    return RunStateResponse(
        run_id=run_id,
        status="running",
        ticks=handle.state.tick,
        health_status=latest.status if latest is not None else None,
    )


@router.post("/runs/{run_id}/stop", response_model=RunStateResponse)
def stop_run(run_id: str) -> RunStateResponse:
    _require_run_dir(run_id)

    with _live_lock:
        handle = _live.get(run_id)
    if handle is None:
        raise HTTPException(status_code=409, detail="run is not running in this process")

    try:
        handle.lifecycle.stop()
        summary = persist_health_summary(art=handle.artifacts, series=handle.monitor.series)
    except Exception as e:
        raise _fail(run_id, e, str(e))
    finally:
        handle.close()
        with _live_lock:
            _live.pop(run_id, None)

    health_status: HealthStatus | None = summary["final_status"]
    _registry.mark_stopped(run_id=run_id, health_status=health_status)

    return RunStateResponse(run_id=run_id, status="stopped", ticks=handle.state.tick, health_status=health_status)


@router.get("/runs", response_model=RunsListResponse)
def list_runs() -> RunsListResponse:
    out: list[RunDetailsResponse] = []
    for rec in _registry.list():
        art = artifacts_for(runs_dir=settings.runs_dir, run_id=rec.run_id)
        out.append(_details(rec.run_id, art))
    return RunsListResponse(runs=out)


@router.get("/runs/{run_id}", response_model=RunDetailsResponse)
def get_run(run_id: str) -> RunDetailsResponse:
    art = _require_run_dir(run_id)
    return _details(run_id, art)


@router.get("/runs/{run_id}/verdict", response_model=VerdictResponse)
def get_latest_verdict(run_id: str) -> VerdictResponse:
    _require_run_dir(run_id)

    with _live_lock:
        handle = _live.get(run_id)
    if handle is None:
        raise HTTPException(status_code=409, detail="run is not live in this process")

    verdict = handle.monitor.latest
    tick = handle.monitor.latest_tick
    if verdict is None or tick is None:
        raise HTTPException(status_code=404, detail="no verdict yet")

    return VerdictResponse(
        run_id=run_id,
        tick=tick,
        status=verdict.status,
        details=verdict.details,
        messages=[VerdictMessageOut(severity=m.severity, text=m.text, rule=m.rule) for m in verdict.messages],
    )


@router.get("/runs/{run_id}/summary")
def get_summary(run_id: str) -> dict[str, Any]:
    art = _require_run_dir(run_id)
    if not art.health_summary_json.exists():
        raise HTTPException(status_code=404, detail="summary not available (stop the run first)")
    return json.loads(art.health_summary_json.read_text(encoding="utf-8"))
