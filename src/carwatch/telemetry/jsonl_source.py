from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping

import orjson

from carwatch.detection.models import ExternalAnomaly, Reading

_INT_FIELDS = (
    "engine_temp_c",
    "gear_smoothness",
    "accel_sound_db",
    "transmission_oil",
    "engine_oil",
    "coolant",
)


def reading_from_dict(obj: Mapping[str, Any]) -> Reading:
    """
    Build and validate a Reading from its JSON form.

    external_anomaly is optional: {"flag": bool, "details": str} or null.
    """
    missing = [k for k in (*_INT_FIELDS, "leak_detected") if k not in obj]
    if missing:
        raise ValueError(f"missing fields: {', '.join(missing)}")

    for k in _INT_FIELDS:
        if not isinstance(obj[k], int) or isinstance(obj[k], bool):
            raise ValueError(f"{k!r} must be an integer")
    if not isinstance(obj["leak_detected"], bool):
        raise ValueError("'leak_detected' must be a boolean")

    codes = obj.get("error_codes", [])
    if not isinstance(codes, list):
        raise ValueError("'error_codes' must be a list")

    anomaly = None
    raw = obj.get("external_anomaly")
    if raw is not None:
        if not isinstance(raw, dict) or not isinstance(raw.get("flag"), bool):
            raise ValueError("'external_anomaly' must be {\"flag\": bool, \"details\": str}")
        anomaly = ExternalAnomaly(flag=raw["flag"], details=str(raw.get("details", "")))

    reading = Reading(
        engine_temp_c=obj["engine_temp_c"],
        error_codes=tuple(codes),
        gear_smoothness=obj["gear_smoothness"],
        accel_sound_db=obj["accel_sound_db"],
        transmission_oil=obj["transmission_oil"],
        engine_oil=obj["engine_oil"],
        coolant=obj["coolant"],
        leak_detected=obj["leak_detected"],
        external_anomaly=anomaly,
    )
    reading.validate()
    return reading


@dataclass(frozen=True, slots=True)
class JsonlTelemetrySource:
    """
    Recorded telemetry replay, one JSON object per line.

    Order preserved. Blank lines ignored. Errors name the line number.
    """

    path: Path

    def __iter__(self) -> Iterator[Reading]:
        with self.path.open("rb") as f:
            for line_no, line in enumerate(f, start=1):
                s = line.strip()
                if not s:
                    continue

                try:
                    obj = orjson.loads(s)
                except orjson.JSONDecodeError as e:
                    raise ValueError(f"invalid JSON on line {line_no}: {e}") from e

                if not isinstance(obj, dict):
                    raise ValueError(f"expected a JSON object on line {line_no}")

                try:
                    yield reading_from_dict(obj)
                except ValueError as e:
                    raise ValueError(f"invalid reading on line {line_no}: {e}") from e
