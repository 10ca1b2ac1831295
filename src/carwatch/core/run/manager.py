from __future__ import annotations

import os
import platform
import secrets
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import structlog

from carwatch.core.logging.setup import bind_context
from carwatch.core.run.persist import write_json_atomic

log = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class RunInfo:
    run_id: str
    run_dir: Path
    created_at_utc: datetime
    seed: int


class RunManager:
    """
    Creates runs on disk.

    - unique run ids (UTC timestamp + random suffix)
    - isolated run directory with config.json snapshot and meta.json
    - run_id bound into the logging context
    """

    _META_SCHEMA_VERSION = 1

    def __init__(self, runs_dir: Path) -> None:
        self._runs_dir = runs_dir

    def create_run(self, *, seed: int, config_snapshot: Mapping[str, Any]) -> RunInfo:
        self._runs_dir.mkdir(parents=True, exist_ok=True)

        created_at = datetime.now(timezone.utc)
        run_id = f"{created_at:%Y%m%dT%H%M%SZ}_{secrets.token_hex(4)}"

        run_dir = self._runs_dir / run_id
        run_dir.mkdir(parents=False, exist_ok=False)

        write_json_atomic(run_dir / "config.json", dict(config_snapshot))
        write_json_atomic(
            run_dir / "meta.json",
            {
                "schema_version": self._META_SCHEMA_VERSION,
                "run_id": run_id,
                "created_at_utc": created_at.isoformat(),
                "seed": seed,
                "pid": os.getpid(),
                "python": sys.version.split()[0],
                "platform": f"{platform.system()} {platform.release()} {platform.machine()}",
            },
        )

        bind_context(run_id=run_id)
        log.info("run.created", run_id=run_id, run_dir=str(run_dir), seed=seed)

        return RunInfo(run_id=run_id, run_dir=run_dir, created_at_utc=created_at, seed=seed)
