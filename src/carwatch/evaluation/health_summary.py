from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any

from carwatch.detection.models import HealthStatus, Verdict

_STATUSES: tuple[HealthStatus, ...] = ("normal", "warning", "serious_problem")


@dataclass(slots=True)
class HealthSeries:
    """
    Columnar per-tick record of a run's verdicts (one row per tick).
    """

    tick: list[int]
    status: list[str]
    warnings: list[int]
    criticals: list[int]
    rules: list[str]  # comma-joined names of rules that fired

    @classmethod
    def empty(cls) -> "HealthSeries":
        return cls(tick=[], status=[], warnings=[], criticals=[], rules=[])

    def __len__(self) -> int:
        return len(self.tick)

    def append(self, *, tick: int, verdict: Verdict) -> None:
        self.tick.append(tick)
        self.status.append(verdict.status)
        self.warnings.append(sum(1 for m in verdict.messages if m.severity == "warning"))
        self.criticals.append(sum(1 for m in verdict.messages if m.severity == "critical"))
        self.rules.append(",".join(verdict.rules_fired()))


def empty_summary() -> dict[str, Any]:
    return {
        "ticks": 0,
        "status_frac": {s: 0.0 for s in _STATUSES},
        "longest_serious_streak": 0,
        "status_changes": 0,
        "rule_hits": {},
        "final_status": None,
    }


def summarize(series: HealthSeries) -> dict[str, Any]:
    """
    Run-level health summary. Deterministic for a given series.
    """
    n = len(series)
    if n == 0:
        return empty_summary()

    by_status = Counter(series.status)

    longest = run = 0
    for s in series.status:
        run = run + 1 if s == "serious_problem" else 0
        longest = max(longest, run)

    # the first tick is measured against the initial normal status
    changes = sum(1 for prev, cur in zip(["normal", *series.status], series.status) if prev != cur)

    hits: Counter[str] = Counter()
    for fired in series.rules:
        if fired:
            hits.update(fired.split(","))

    return {
        "ticks": n,
        "status_frac": {s: by_status.get(s, 0) / n for s in _STATUSES},
        "longest_serious_streak": longest,
        "status_changes": changes,
        "rule_hits": dict(sorted(hits.items())),
        "final_status": series.status[-1],
    }
