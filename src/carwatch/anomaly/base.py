from __future__ import annotations

from typing import Protocol

from carwatch.detection.models import ExternalAnomaly, Reading


class AnomalyChecker(Protocol):
    """
    External anomaly collaborator.

    assess() must not raise for transport or parsing problems: it resolves
    them to ExternalAnomaly(flag=False, details=<reason>). None means the
    checker has no verdict for this reading.
    """

    def assess(self, reading: Reading) -> ExternalAnomaly | None:
        ...

    def close(self) -> None:
        ...


class NullAnomalyChecker:
    """
    No external checker configured: every reading goes without a verdict.
    """

    def assess(self, reading: Reading) -> ExternalAnomaly | None:
        return None

    def close(self) -> None:
        pass
