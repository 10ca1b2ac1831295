from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Literal

from carwatch.core.run.manager import RunInfo
from carwatch.detection.models import HealthStatus

RunStatus = Literal["created", "running", "stopped", "error"]


@dataclass(frozen=True, slots=True)
class RunRecord:
    """
    In-memory view of a run for the API. The run directory stays the
    durable source of truth.
    """

    run_id: str
    run_dir: str
    seed: int

    status: RunStatus
    created_at_utc: datetime
    updated_at_utc: datetime

    health_status: HealthStatus | None = None
    error_type: str | None = None
    error_message: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RunRegistry:
    """
    Thread-safe run status registry (FastAPI runs sync routes in a threadpool).
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._runs: dict[str, RunRecord] = {}

    def upsert_created(self, run: RunInfo) -> RunRecord:
        rec = RunRecord(
            run_id=run.run_id,
            run_dir=str(run.run_dir),
            seed=run.seed,
            status="created",
            created_at_utc=run.created_at_utc,
            updated_at_utc=_now(),
        )
        with self._lock:
            self._runs[run.run_id] = rec
        return rec

    def mark_running(self, *, run_id: str) -> None:
        self._update(run_id, status="running", error_type=None, error_message=None)

    def mark_stopped(self, *, run_id: str, health_status: HealthStatus | None = None) -> None:
        self._update(run_id, status="stopped", health_status=health_status, error_type=None, error_message=None)

    def mark_error(self, *, run_id: str, error_type: str, error_message: str) -> None:
        self._update(run_id, status="error", error_type=error_type, error_message=error_message)

    def set_health(self, *, run_id: str, health_status: HealthStatus) -> None:
        with self._lock:
            cur = self._runs.get(run_id)
            if cur is not None:
                self._runs[run_id] = replace(cur, health_status=health_status, updated_at_utc=_now())

    def get(self, *, run_id: str) -> RunRecord | None:
        with self._lock:
            return self._runs.get(run_id)

    def list(self) -> list[RunRecord]:
        with self._lock:
            items = list(self._runs.values())
        items.sort(key=lambda r: r.updated_at_utc, reverse=True)
        return items

    def _update(self, run_id: str, **changes: object) -> None:
        with self._lock:
            now = _now()
            cur = self._runs.get(run_id)
            if cur is None:
                # unknown to this process (e.g. created before a restart)
                cur = RunRecord(
                    run_id=run_id,
                    run_dir="",
                    seed=0,
                    status="created",
                    created_at_utc=now,
                    updated_at_utc=now,
                )
            self._runs[run_id] = replace(cur, updated_at_utc=now, **changes)
