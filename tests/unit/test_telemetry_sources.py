from __future__ import annotations

import json
from itertools import islice
from pathlib import Path

import pytest

from carwatch.detection.models import Reading
from carwatch.telemetry.jsonl_source import JsonlTelemetrySource, reading_from_dict
from carwatch.telemetry.simulator import SIMULATED_ERROR_CODES, TelemetrySimulator


def _take(sim: TelemetrySimulator, n: int) -> list[Reading]:
    return list(islice(sim, n))


def test_simulator_is_deterministic_per_seed() -> None:
    assert _take(TelemetrySimulator(seed=11), 200) == _take(TelemetrySimulator(seed=11), 200)
    assert _take(TelemetrySimulator(seed=11), 200) != _take(TelemetrySimulator(seed=12), 200)


def test_simulator_stays_in_range() -> None:
    for r in _take(TelemetrySimulator(seed=3), 2000):
        r.validate()
        assert 85 <= r.engine_temp_c <= 115
        assert 55 <= r.accel_sound_db <= 95
        assert set(r.error_codes) <= set(SIMULATED_ERROR_CODES)
        assert r.external_anomaly is None


def test_simulator_trims_error_code_history() -> None:
    readings = _take(TelemetrySimulator(seed=5, max_error_codes=2), 5000)

    assert max(len(r.error_codes) for r in readings) == 2
    # history grows by one code per tick (oldest dropped), or clears
    for prev, cur in zip(readings, readings[1:]):
        if cur.error_codes and prev.error_codes:
            assert cur.error_codes == (prev.error_codes + cur.error_codes[-1:])[-2:]


def test_simulator_produces_faults_sometimes() -> None:
    readings = _take(TelemetrySimulator(seed=1), 1000)

    assert any(r.leak_detected for r in readings)
    assert any(r.coolant <= 3 for r in readings)
    assert any(r.gear_smoothness >= 7 for r in readings)


def test_simulator_rejects_bad_history_size() -> None:
    with pytest.raises(ValueError):
        TelemetrySimulator(seed=1, max_error_codes=6)


def _row(**overrides: object) -> dict:
    row = {
        "engine_temp_c": 90,
        "error_codes": [],
        "gear_smoothness": 5,
        "accel_sound_db": 60,
        "transmission_oil": 9,
        "engine_oil": 9,
        "coolant": 9,
        "leak_detected": False,
    }
    row.update(overrides)
    return row


def test_reading_from_dict_round_trips_optional_anomaly() -> None:
    r = reading_from_dict(_row(error_codes=["P0301"], external_anomaly={"flag": True, "details": "odd"}))

    assert r.error_codes == ("P0301",)
    assert r.external_anomaly is not None
    assert r.external_anomaly.flag is True
    assert r.external_anomaly.details == "odd"

    assert reading_from_dict(_row()) == Reading.nominal()


@pytest.mark.parametrize(
    "row",
    [
        _row(coolant=0),
        _row(gear_smoothness=11),
        _row(error_codes=["P0001"] * 6),
        _row(leak_detected="yes"),
        _row(engine_temp_c="hot"),
        _row(external_anomaly={"details": "no flag"}),
        {"engine_temp_c": 90},
    ],
)
def test_reading_from_dict_rejects_invalid_rows(row: dict) -> None:
    with pytest.raises(ValueError):
        reading_from_dict(row)


def test_jsonl_source_skips_blank_lines(tmp_path: Path) -> None:
    path = tmp_path / "telemetry.jsonl"
    path.write_text(
        json.dumps(_row(engine_temp_c=110)) + "\n\n" + json.dumps(_row(leak_detected=True)) + "\n",
        encoding="utf-8",
    )

    readings = list(JsonlTelemetrySource(path=path))

    assert [r.engine_temp_c for r in readings] == [110, 90]
    assert [r.leak_detected for r in readings] == [False, True]


def test_jsonl_source_reports_line_number(tmp_path: Path) -> None:
    path = tmp_path / "telemetry.jsonl"
    path.write_text(json.dumps(_row()) + "\n{broken\n", encoding="utf-8")

    with pytest.raises(ValueError, match="line 2"):
        list(JsonlTelemetrySource(path=path))
