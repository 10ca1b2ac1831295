from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")


def validate_run_id(run_id: str) -> None:
    if not run_id or not _RUN_ID_RE.match(run_id):
        raise ValueError(f"invalid run_id: {run_id!r}")


@dataclass(frozen=True, slots=True)
class RunArtifacts:
    """
    File layout of one run directory.
    """

    run_dir: Path

    @property
    def config_json(self) -> Path:
        return self.run_dir / "config.json"

    @property
    def meta_json(self) -> Path:
        return self.run_dir / "meta.json"

    @property
    def events_jsonl(self) -> Path:
        return self.run_dir / "events.jsonl"

    @property
    def health_series_parquet(self) -> Path:
        return self.run_dir / "health_series.parquet"

    @property
    def health_summary_json(self) -> Path:
        return self.run_dir / "health_summary.json"

    @property
    def logs_dir(self) -> Path:
        return self.run_dir / "logs"

    def ensure_dirs(self) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def as_dict(self) -> dict[str, str]:
        return {
            "config_json": str(self.config_json),
            "meta_json": str(self.meta_json),
            "events_jsonl": str(self.events_jsonl),
            "health_series_parquet": str(self.health_series_parquet),
            "health_summary_json": str(self.health_summary_json),
        }


def artifacts_for(*, runs_dir: Path, run_id: str) -> RunArtifacts:
    """
    Resolve a run's artifacts, refusing ids that escape runs_dir.
    """
    validate_run_id(run_id)
    base = runs_dir.resolve()
    run_dir = (base / run_id).resolve()

    if base not in run_dir.parents:
        raise ValueError("invalid run_dir resolution")

    return RunArtifacts(run_dir=run_dir)
