from __future__ import annotations

import os
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import IO, Any

import orjson

from carwatch.core.events.base import Event

_DUMP_OPTS = orjson.OPT_SORT_KEYS | orjson.OPT_APPEND_NEWLINE


class JsonlEventStore:
    """
    Append-only JSONL event log, one event per line in publish order.

    UUIDs and datetimes are serialized by orjson natively; event_type is
    added explicitly since it is a ClassVar.
    """

    def __init__(self, *, path: Path, fsync: bool = True) -> None:
        self._path = path
        self._fsync = fsync
        self._fh: IO[bytes] | None = None

        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._fh is not None

    def open(self) -> None:
        if self._fh is None:
            self._fh = self._path.open("ab")

    def close(self) -> None:
        if self._fh is None:
            return
        try:
            self._flush()
        finally:
            self._fh.close()
            self._fh = None

    def append(self, event: Event) -> None:
        self.open()
        assert self._fh is not None

        self._fh.write(orjson.dumps(event_to_dict(event), option=_DUMP_OPTS))
        self._flush()

    def iter_events(self) -> list[dict[str, Any]]:
        """
        All logged events as dicts (diagnostics and tests).
        """
        if not self._path.exists():
            return []
        with self._path.open("rb") as fh:
            return [orjson.loads(line) for line in fh if line.strip()]

    def _flush(self) -> None:
        assert self._fh is not None
        self._fh.flush()
        if self._fsync:
            os.fsync(self._fh.fileno())


def event_to_dict(event: Event) -> dict[str, Any]:
    d = asdict(event) if is_dataclass(event) else dict(vars(event))
    d["event_type"] = event.event_type
    return d
