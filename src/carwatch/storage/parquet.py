from __future__ import annotations

from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

import pyarrow as pa
import pyarrow.parquet as pq
import structlog

log = structlog.get_logger()


def write_series_parquet(*, path: Path, series: Any, compression: str = "zstd") -> bool:
    """
    Write a columnar series (dataclass of equal-length lists) to Parquet.

    Written to a temp file then renamed, so readers never see a partial file.
    Returns False (and writes nothing) for an empty series.
    """
    columns: dict[str, list[Any]] = asdict(series) if is_dataclass(series) else dict(vars(series))

    lengths = {k: len(v) for k, v in columns.items()}
    if len(set(lengths.values())) > 1:
        raise ValueError(f"series column length mismatch: {lengths}")

    rows = next(iter(lengths.values()), 0)
    if rows == 0:
        log.info("parquet.write_skipped_empty", path=str(path))
        return False

    path.parent.mkdir(parents=True, exist_ok=True)
    table = pa.table({k: columns[k] for k in sorted(columns)})

    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        pq.write_table(table, tmp, compression=compression, write_statistics=True)
        tmp.replace(path)
    finally:
        tmp.unlink(missing_ok=True)

    log.info("parquet.written", path=str(path), rows=rows, cols=len(columns), compression=compression)
    return True
