from __future__ import annotations

from dataclasses import replace

import pytest

from carwatch.detection.evaluator import HealthEvaluator
from carwatch.detection.hysteresis import RuleState
from carwatch.detection.models import ExternalAnomaly, Reading
from carwatch.detection.rules import RULE_NAMES, ConsecutiveRule, RuleThresholds, build_rules

NOMINAL = Reading.nominal()

# (rule, field overrides that trigger it, consecutive limit)
COUNTER_RULES = [
    ("high_engine_temp", {"engine_temp_c": 110}, 5),
    ("rough_gear_change", {"gear_smoothness": 7}, 3),
    ("high_accel_sound", {"accel_sound_db": 85}, 4),
    ("low_transmission_oil", {"transmission_oil": 3}, 2),
    ("low_engine_oil", {"engine_oil": 3}, 2),
    ("low_coolant", {"coolant": 3}, 2),
    ("leakage", {"leak_detected": True}, 1),
]


def _counter_name(ev: HealthEvaluator, rule_name: str) -> str:
    rule = next(r for r in ev.rules if r.name == rule_name)
    assert isinstance(rule, ConsecutiveRule)
    return rule.counter


def test_rules_run_in_declaration_order() -> None:
    assert RULE_NAMES == (
        "high_engine_temp",
        "specific_error_codes",
        "rough_gear_change",
        "high_accel_sound",
        "low_transmission_oil",
        "low_engine_oil",
        "low_coolant",
        "leakage",
        "external_anomaly",
    )


@pytest.mark.parametrize("rule_name,overrides,limit", COUNTER_RULES)
def test_counter_rule_escalates_at_limit_and_resets(rule_name: str, overrides: dict, limit: int) -> None:
    ev = HealthEvaluator()
    counter = _counter_name(ev, rule_name)
    bad = replace(NOMINAL, **overrides)

    for attempt in range(1, limit):
        v = ev.evaluate(bad)
        assert v.status == "warning"
        assert [(m.rule, m.severity) for m in v.messages] == [(rule_name, "warning")]
        assert ev.state.counts()[counter] == attempt

    v = ev.evaluate(bad)
    assert v.status == "serious_problem"
    assert [(m.rule, m.severity) for m in v.messages] == [(rule_name, "critical")]
    assert ev.state.counts()[counter] == limit

    # stays critical while sustained
    assert ev.evaluate(bad).status == "serious_problem"

    v = ev.evaluate(NOMINAL)
    assert v.status == "normal"
    assert v.rules_fired() == ()
    assert ev.state.counts()[counter] == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"engine_temp_c": 105},
        {"gear_smoothness": 6},
        {"accel_sound_db": 84},
        {"transmission_oil": 4},
        {"engine_oil": 4},
        {"coolant": 4},
    ],
)
def test_values_just_inside_the_threshold_do_not_fire(overrides: dict) -> None:
    v = HealthEvaluator().evaluate(replace(NOMINAL, **overrides))
    assert v.status == "normal"


def test_interrupted_streak_starts_over() -> None:
    ev = HealthEvaluator()
    hot = replace(NOMINAL, engine_temp_c=110)

    for _ in range(4):
        ev.evaluate(hot)
    ev.evaluate(NOMINAL)

    v = ev.evaluate(hot)
    assert v.status == "warning"
    assert ev.state.high_temp.count == 1


def test_warning_and_critical_messages_carry_reading_values() -> None:
    ev = HealthEvaluator()
    low = replace(NOMINAL, transmission_oil=2)

    assert ev.evaluate(low).messages[0].text == "Transmission oil level low (2/10)."
    assert ev.evaluate(low).messages[0].text == "Low transmission oil level detected (2/10)."


def test_temperature_critical_message() -> None:
    ev = HealthEvaluator()
    hot = replace(NOMINAL, engine_temp_c=111)

    texts = [ev.evaluate(hot).messages[0].text for _ in range(5)]
    assert texts[0] == "High engine temp (111°C)."
    assert texts[-1] == "Engine overheating detected for too long!"


@pytest.mark.parametrize(
    "codes,expected",
    [
        ((), None),
        (("P0420", "U0100"), None),
        (("p0301",), None),
        (("P0301",), ("warning", "Specific error codes detected (1 times).")),
        (("P0420", "P0700", "P0703"), ("warning", "Specific error codes detected (2 times).")),
        (("P0301", "P0301", "P0301"), ("critical", "Frequent specific errors detected (3 times).")),
        (("P0301", "P0701", "P0000", "P0702", "P0703"), ("critical", "Frequent specific errors detected (4 times).")),
    ],
)
def test_error_code_rule_counts_matches_in_current_list(codes: tuple, expected: tuple | None) -> None:
    v = HealthEvaluator().evaluate(replace(NOMINAL, error_codes=codes))

    fired = [(m.severity, m.text) for m in v.messages if m.rule == "specific_error_codes"]
    assert fired == ([] if expected is None else [expected])


def test_error_code_rule_is_stateless_across_ticks() -> None:
    ev = HealthEvaluator()

    assert ev.evaluate(NOMINAL).status == "normal"

    v = ev.evaluate(replace(NOMINAL, error_codes=("P0301", "P0301", "P0301")))
    assert v.status == "serious_problem"
    assert v.messages[0].severity == "critical"

    v = ev.evaluate(NOMINAL)
    assert v.status == "normal"


@pytest.mark.parametrize(
    "anomaly,status",
    [
        (None, "normal"),
        (ExternalAnomaly(flag=False, details="No unusual patterns detected."), "normal"),
        (ExternalAnomaly(flag=True, details="Oil and coolant dropping together."), "serious_problem"),
    ],
)
def test_external_anomaly_is_immediately_critical_when_flagged(anomaly: ExternalAnomaly | None, status: str) -> None:
    v = HealthEvaluator().evaluate(replace(NOMINAL, external_anomaly=anomaly))

    assert v.status == status
    if status == "serious_problem":
        assert v.messages[0].rule == "external_anomaly"
        assert v.messages[0].text == "AI Anomaly: Oil and coolant dropping together."


def test_custom_thresholds_change_limits() -> None:
    ev = HealthEvaluator(thresholds=RuleThresholds(high_temp_c=100, high_temp_limit=2))
    warm = replace(NOMINAL, engine_temp_c=101)

    assert ev.evaluate(warm).status == "warning"
    assert ev.evaluate(warm).status == "serious_problem"


def test_consecutive_rule_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        ConsecutiveRule(
            name="broken",
            counter="high_temp",
            limit=0,
            trigger=lambda r: True,
            warning=lambda r: "",
            critical=lambda r: "",
        )


def test_rules_evaluate_directly_against_a_state() -> None:
    state = RuleState()
    leak_rule = next(r for r in build_rules() if r.name == "leakage")

    outcome = leak_rule.evaluate(replace(NOMINAL, leak_detected=True), state)
    assert outcome is not None
    assert outcome.severity == "critical"
    assert outcome.message == "Potential fluid leakage detected!"
    assert state.leakage.count == 1
