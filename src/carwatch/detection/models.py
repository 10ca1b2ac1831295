from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Severity = Literal["info", "warning", "critical"]
HealthStatus = Literal["normal", "warning", "serious_problem"]

MAX_ERROR_CODES = 5

_LEVEL_MIN = 1
_LEVEL_MAX = 10


@dataclass(frozen=True, slots=True)
class ExternalAnomaly:
    """
    Resolved verdict of the external anomaly collaborator.

    Collaborator failures are folded into flag=False with a reason in details.
    """

    flag: bool
    details: str


@dataclass(frozen=True, slots=True)
class Reading:
    """
    Telemetry snapshot for one tick.

    Levels (gear_smoothness, fluids) are on a 1..10 scale:
      - gear_smoothness: 1 smooth, 10 roughest
      - transmission_oil / engine_oil / coolant: 10 full

    error_codes is ordered oldest -> newest and already trimmed by the source.
    external_anomaly is None while the collaborator has no answer.
    """

    engine_temp_c: int
    error_codes: tuple[str, ...]
    gear_smoothness: int
    accel_sound_db: int
    transmission_oil: int
    engine_oil: int
    coolant: int
    leak_detected: bool
    external_anomaly: ExternalAnomaly | None = None

    @classmethod
    def nominal(cls) -> "Reading":
        """
        Baseline snapshot of a healthy vehicle at idle.
        """
        return cls(
            engine_temp_c=90,
            error_codes=(),
            gear_smoothness=5,
            accel_sound_db=60,
            transmission_oil=9,
            engine_oil=9,
            coolant=9,
            leak_detected=False,
        )

    def validate(self) -> None:
        if len(self.error_codes) > MAX_ERROR_CODES:
            raise ValueError(f"error_codes holds at most {MAX_ERROR_CODES} codes, got {len(self.error_codes)}")
        for code in self.error_codes:
            if not isinstance(code, str) or not code:
                raise ValueError(f"invalid error code: {code!r}")

        for name in ("gear_smoothness", "transmission_oil", "engine_oil", "coolant"):
            value = getattr(self, name)
            if not _LEVEL_MIN <= value <= _LEVEL_MAX:
                raise ValueError(f"{name} must be in [{_LEVEL_MIN}, {_LEVEL_MAX}], got {value}")


@dataclass(frozen=True, slots=True)
class RuleOutcome:
    """
    Result of one rule that fired on the current tick.

    count is the rule's consecutive-tick counter (or match count for
    stateless rules) at the time it fired.
    """

    rule: str
    severity: Severity
    message: str
    count: int = 1


@dataclass(frozen=True, slots=True)
class VerdictMessage:
    severity: Severity
    text: str
    rule: str | None = None


_SEVERITY_LABEL: dict[Severity, str] = {
    "info": "Info",
    "warning": "Warning",
    "critical": "Critical",
}


@dataclass(frozen=True, slots=True)
class Verdict:
    """
    Overall health for one tick plus the ordered explanation.

    messages follow rule declaration order; a warning can sit next to a
    critical even though the status is already serious_problem.
    """

    status: HealthStatus
    messages: tuple[VerdictMessage, ...]

    @property
    def details(self) -> str:
        """
        Single-line rendering, e.g. "Warning: High engine temp (110°C). Critical: ...".
        """
        if len(self.messages) == 1 and self.messages[0].severity == "info":
            return self.messages[0].text
        return " ".join(f"{_SEVERITY_LABEL[m.severity]}: {m.text}" for m in self.messages)

    def rules_fired(self) -> tuple[str, ...]:
        return tuple(m.rule for m in self.messages if m.rule is not None)
