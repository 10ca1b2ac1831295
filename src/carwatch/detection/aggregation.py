from __future__ import annotations

from typing import Iterable

from carwatch.detection.models import HealthStatus, RuleOutcome, Verdict, VerdictMessage

ALL_NORMAL_MESSAGE = "All systems normal."


def aggregate(outcomes: Iterable[RuleOutcome]) -> Verdict:
    """
    Reduce per-rule outcomes (in rule order) to one Verdict.

    Precedence:
      - any critical -> serious_problem, never downgraded afterwards
      - a warning only moves the status off normal
    Every outcome keeps its own message and severity, in rule order.
    """
    status: HealthStatus = "normal"
    messages: list[VerdictMessage] = []

    for o in outcomes:
        if o.severity == "critical":
            status = "serious_problem"
        elif o.severity == "warning" and status == "normal":
            status = "warning"
        messages.append(VerdictMessage(severity=o.severity, text=o.message, rule=o.rule))

    if not messages:
        return Verdict(status="normal", messages=(VerdictMessage(severity="info", text=ALL_NORMAL_MESSAGE),))

    return Verdict(status=status, messages=tuple(messages))
