from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from carwatch.core.run.artifacts import RunArtifacts
from carwatch.evaluation.health_summary import HealthSeries, summarize
from carwatch.storage.parquet import write_series_parquet

log = structlog.get_logger()


def write_json_atomic(path: Path, payload: Any) -> None:
    """
    Write JSON to a temp file then rename, so readers never see partial JSON.
    """
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(
        json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False, default=str) + "\n",
        encoding="utf-8",
    )
    tmp.replace(path)


def persist_health_summary(*, art: RunArtifacts, series: HealthSeries) -> dict:
    """
    Writes health_series.parquet (skipped when empty) and health_summary.json.
    Returns the summary.
    """
    art.ensure_dirs()

    write_series_parquet(path=art.health_series_parquet, series=series)

    summary = summarize(series)
    write_json_atomic(art.health_summary_json, summary)

    log.info("run.health_summary_written", ticks=summary["ticks"], final_status=summary["final_status"])
    return summary
