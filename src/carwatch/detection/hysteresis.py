from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields


@dataclass(slots=True)
class HysteresisCounter:
    """
    Consecutive-tick counter for one rule.

    observe(True) increments (saturating at sys.maxsize) and returns the new count;
    observe(False) resets to 0 and returns 0.
    """

    count: int = 0

    def observe(self, condition: bool) -> int:
        if condition:
            if self.count < sys.maxsize:
                self.count += 1
        else:
            self.count = 0
        return self.count

    def reset(self) -> None:
        self.count = 0


@dataclass(slots=True)
class RuleState:
    """
    All mutable state of the evaluator: one counter per stateful rule.

    The error-code rule has no entry, it is recomputed from each reading.
    """

    high_temp: HysteresisCounter = field(default_factory=HysteresisCounter)
    rough_gear: HysteresisCounter = field(default_factory=HysteresisCounter)
    high_sound: HysteresisCounter = field(default_factory=HysteresisCounter)
    low_transmission_oil: HysteresisCounter = field(default_factory=HysteresisCounter)
    low_engine_oil: HysteresisCounter = field(default_factory=HysteresisCounter)
    low_coolant: HysteresisCounter = field(default_factory=HysteresisCounter)
    leakage: HysteresisCounter = field(default_factory=HysteresisCounter)

    def counter(self, name: str) -> HysteresisCounter:
        c = getattr(self, name, None)
        if not isinstance(c, HysteresisCounter):
            raise KeyError(f"unknown counter: {name!r}")
        return c

    def counts(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name).count for f in fields(self)}

    def reset(self) -> None:
        for f in fields(self):
            getattr(self, f.name).reset()
