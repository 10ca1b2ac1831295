from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol

from carwatch.detection.hysteresis import RuleState
from carwatch.detection.models import Reading, RuleOutcome

ENGINE_MISFIRE_CODE = "P0301"
TRANSMISSION_ERROR_CODES: tuple[str, ...] = ("P0700", "P0701", "P0702", "P0703")


@dataclass(frozen=True, slots=True)
class RuleThresholds:
    """
    Trigger thresholds and escalation limits for the built-in rules.

    Comparisons: temperature is strict (>), everything else inclusive.
    A *_limit is the consecutive-tick count at which a warning becomes critical.
    """

    high_temp_c: int = 105
    high_temp_limit: int = 5

    engine_error_code: str = ENGINE_MISFIRE_CODE
    transmission_error_codes: tuple[str, ...] = TRANSMISSION_ERROR_CODES
    frequent_error_count: int = 3

    rough_gear_min: int = 7
    rough_gear_limit: int = 3

    high_sound_db: int = 85
    high_sound_limit: int = 4

    low_fluid_max: int = 3
    low_fluid_limit: int = 2

    leakage_limit: int = 1


class Rule(Protocol):
    """
    One health rule. evaluate() runs on every tick, including ticks where the
    rule does not fire, so stateful rules can reset their counter.
    """

    name: str

    def evaluate(self, reading: Reading, state: RuleState) -> RuleOutcome | None:
        ...


ReadingPredicate = Callable[[Reading], bool]
MessageBuilder = Callable[[Reading], str]


@dataclass(frozen=True, slots=True)
class ConsecutiveRule:
    """
    Threshold rule debounced by a hysteresis counter in RuleState.

    Warning while the counter is below limit, critical from limit on,
    nothing (and counter reset) as soon as the trigger stops holding.
    """

    name: str
    counter: str
    limit: int
    trigger: ReadingPredicate
    warning: MessageBuilder
    critical: MessageBuilder

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"{self.name}: limit must be >= 1")

    def evaluate(self, reading: Reading, state: RuleState) -> RuleOutcome | None:
        count = state.counter(self.counter).observe(self.trigger(reading))
        if count == 0:
            return None

        if count >= self.limit:
            return RuleOutcome(rule=self.name, severity="critical", message=self.critical(reading), count=count)
        return RuleOutcome(rule=self.name, severity="warning", message=self.warning(reading), count=count)


@dataclass(frozen=True, slots=True)
class ErrorCodeRule:
    """
    Stateless: counts watched codes in the current reading's history only.
    Matching is exact and case-sensitive.
    """

    name: str
    codes: frozenset[str]
    frequent_count: int

    def evaluate(self, reading: Reading, state: RuleState) -> RuleOutcome | None:
        matches = sum(1 for code in reading.error_codes if code in self.codes)
        if matches == 0:
            return None

        if matches >= self.frequent_count:
            return RuleOutcome(
                rule=self.name,
                severity="critical",
                message=f"Frequent specific errors detected ({matches} times).",
                count=matches,
            )
        return RuleOutcome(
            rule=self.name,
            severity="warning",
            message=f"Specific error codes detected ({matches} times).",
            count=matches,
        )


@dataclass(frozen=True, slots=True)
class ExternalAnomalyRule:
    """
    Pass-through of the collaborator's verdict: flagged means critical.
    An absent verdict is no outcome, same as an unflagged one.
    """

    name: str
    prefix: str = field(default="AI Anomaly")

    def evaluate(self, reading: Reading, state: RuleState) -> RuleOutcome | None:
        anomaly = reading.external_anomaly
        if anomaly is None or not anomaly.flag:
            return None
        return RuleOutcome(rule=self.name, severity="critical", message=f"{self.prefix}: {anomaly.details}")


def _low_fluid_rule(*, name: str, counter: str, attr: str, label: str, t: RuleThresholds) -> ConsecutiveRule:
    return ConsecutiveRule(
        name=name,
        counter=counter,
        limit=t.low_fluid_limit,
        trigger=lambda r: getattr(r, attr) <= t.low_fluid_max,
        warning=lambda r: f"{label.capitalize()} level low ({getattr(r, attr)}/10).",
        critical=lambda r: f"Low {label} level detected ({getattr(r, attr)}/10).",
    )


def build_rules(thresholds: RuleThresholds | None = None) -> tuple[Rule, ...]:
    """
    The built-in rule set in declaration order (this order drives message order).
    """
    t = thresholds or RuleThresholds()

    return (
        ConsecutiveRule(
            name="high_engine_temp",
            counter="high_temp",
            limit=t.high_temp_limit,
            trigger=lambda r: r.engine_temp_c > t.high_temp_c,
            warning=lambda r: f"High engine temp ({r.engine_temp_c}°C).",
            critical=lambda r: "Engine overheating detected for too long!",
        ),
        ErrorCodeRule(
            name="specific_error_codes",
            codes=frozenset((t.engine_error_code, *t.transmission_error_codes)),
            frequent_count=t.frequent_error_count,
        ),
        ConsecutiveRule(
            name="rough_gear_change",
            counter="rough_gear",
            limit=t.rough_gear_limit,
            trigger=lambda r: r.gear_smoothness >= t.rough_gear_min,
            warning=lambda r: f"Rough gear change detected (smoothness: {r.gear_smoothness}).",
            critical=lambda r: f"Persistent rough gear changes detected (smoothness: {r.gear_smoothness}).",
        ),
        ConsecutiveRule(
            name="high_accel_sound",
            counter="high_sound",
            limit=t.high_sound_limit,
            trigger=lambda r: r.accel_sound_db >= t.high_sound_db,
            warning=lambda r: f"High acceleration sound detected ({r.accel_sound_db}dB).",
            critical=lambda r: f"Excessive acceleration sound detected ({r.accel_sound_db}dB).",
        ),
        _low_fluid_rule(
            name="low_transmission_oil",
            counter="low_transmission_oil",
            attr="transmission_oil",
            label="transmission oil",
            t=t,
        ),
        _low_fluid_rule(
            name="low_engine_oil",
            counter="low_engine_oil",
            attr="engine_oil",
            label="engine oil",
            t=t,
        ),
        _low_fluid_rule(
            name="low_coolant",
            counter="low_coolant",
            attr="coolant",
            label="coolant",
            t=t,
        ),
        ConsecutiveRule(
            name="leakage",
            counter="leakage",
            limit=t.leakage_limit,
            trigger=lambda r: r.leak_detected,
            warning=lambda r: "Possible fluid leakage detected.",
            critical=lambda r: "Potential fluid leakage detected!",
        ),
        ExternalAnomalyRule(name="external_anomaly"),
    )


RULE_NAMES: tuple[str, ...] = tuple(r.name for r in build_rules())
