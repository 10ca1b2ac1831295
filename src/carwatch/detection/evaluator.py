from __future__ import annotations

from threading import Lock
from typing import Sequence

import structlog

from carwatch.detection.aggregation import aggregate
from carwatch.detection.hysteresis import RuleState
from carwatch.detection.models import Reading, RuleOutcome, Verdict
from carwatch.detection.rules import Rule, RuleThresholds, build_rules

log = structlog.get_logger()


class HealthEvaluator:
    """
    Deterministic, stateful rule evaluator.

    evaluate() is a total state transition: run every rule against the
    reading (mutating the hysteresis counters), then aggregate.
    The lock spans the whole call so concurrent callers cannot interleave
    counter updates; the host is still expected to feed ticks in order.
    """

    def __init__(
        self,
        *,
        rules: Sequence[Rule] | None = None,
        thresholds: RuleThresholds | None = None,
    ) -> None:
        if rules is not None and thresholds is not None:
            raise ValueError("pass either rules or thresholds, not both")

        self._rules: tuple[Rule, ...] = tuple(rules) if rules is not None else build_rules(thresholds)

        names = [r.name for r in self._rules]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate rule names: {names}")

        self._state = RuleState()
        self._lock = Lock()

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def state(self) -> RuleState:
        return self._state

    def evaluate(self, reading: Reading) -> Verdict:
        with self._lock:
            outcomes: list[RuleOutcome] = []
            # no short-circuit: every counter must see every tick
            for rule in self._rules:
                outcome = rule.evaluate(reading, self._state)
                if outcome is not None:
                    outcomes.append(outcome)

            verdict = aggregate(outcomes)

        log.debug(
            "health.evaluated",
            status=verdict.status,
            fired=[o.rule for o in outcomes],
        )
        return verdict

    def reset(self) -> None:
        with self._lock:
            self._state.reset()
