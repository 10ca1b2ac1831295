from __future__ import annotations

from carwatch.detection.aggregation import aggregate
from carwatch.detection.models import RuleOutcome
from carwatch.evaluation.health_summary import HealthSeries, empty_summary, summarize


def _verdict(*outcomes: tuple[str, str]):
    return aggregate([RuleOutcome(rule=r, severity=s, message=r) for r, s in outcomes])


def test_empty_series() -> None:
    assert summarize(HealthSeries.empty()) == empty_summary()


def test_summary_counts_statuses_streaks_and_rule_hits() -> None:
    series = HealthSeries.empty()
    verdicts = [
        _verdict(),
        _verdict(("high_engine_temp", "warning")),
        _verdict(("high_engine_temp", "warning"), ("leakage", "critical")),
        _verdict(("leakage", "critical")),
        _verdict(),
    ]
    for tick, v in enumerate(verdicts, start=1):
        series.append(tick=tick, verdict=v)

    s = summarize(series)

    assert s["ticks"] == 5
    assert s["status_frac"] == {"normal": 0.4, "warning": 0.2, "serious_problem": 0.4}
    assert s["longest_serious_streak"] == 2
    # normal -> warning -> serious -> normal
    assert s["status_changes"] == 3
    assert s["rule_hits"] == {"high_engine_temp": 2, "leakage": 2}
    assert s["final_status"] == "normal"

    assert series.warnings == [0, 1, 1, 0, 0]
    assert series.criticals == [0, 0, 1, 1, 0]
