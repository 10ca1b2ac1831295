from __future__ import annotations

from itertools import permutations

from carwatch.detection.aggregation import ALL_NORMAL_MESSAGE, aggregate
from carwatch.detection.models import RuleOutcome


def _o(rule: str, severity: str) -> RuleOutcome:
    return RuleOutcome(rule=rule, severity=severity, message=f"{rule} {severity}")


def test_no_outcomes_is_normal_with_single_info_message() -> None:
    v = aggregate([])

    assert v.status == "normal"
    assert len(v.messages) == 1
    assert v.messages[0].severity == "info"
    assert v.messages[0].text == ALL_NORMAL_MESSAGE
    assert v.details == ALL_NORMAL_MESSAGE


def test_critical_is_a_sink_and_every_message_is_kept_in_order() -> None:
    v = aggregate([_o("a", "warning"), _o("b", "critical"), _o("c", "warning")])

    assert v.status == "serious_problem"
    assert [(m.rule, m.severity) for m in v.messages] == [
        ("a", "warning"),
        ("b", "critical"),
        ("c", "warning"),
    ]


def test_warnings_only_give_warning() -> None:
    v = aggregate([_o("a", "warning"), _o("b", "warning")])

    assert v.status == "warning"
    assert len(v.messages) == 2


def test_status_does_not_depend_on_outcome_order() -> None:
    outcomes = [_o("a", "warning"), _o("b", "critical"), _o("c", "warning"), _o("d", "critical")]

    statuses = {aggregate(list(p)).status for p in permutations(outcomes)}
    assert statuses == {"serious_problem"}

    warnings_only = [_o("a", "warning"), _o("b", "warning"), _o("c", "warning")]
    assert {aggregate(list(p)).status for p in permutations(warnings_only)} == {"warning"}


def test_details_renders_severity_labels() -> None:
    v = aggregate(
        [
            RuleOutcome(rule="high_engine_temp", severity="warning", message="High engine temp (110°C)."),
            RuleOutcome(rule="leakage", severity="critical", message="Potential fluid leakage detected!"),
        ]
    )

    assert v.details == "Warning: High engine temp (110°C). Critical: Potential fluid leakage detected!"
    assert v.rules_fired() == ("high_engine_temp", "leakage")
