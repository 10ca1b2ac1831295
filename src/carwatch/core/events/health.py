from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from carwatch.core.events.base import Event
from carwatch.detection.models import HealthStatus, Reading, VerdictMessage


@dataclass(frozen=True, slots=True)
class ReadingCaptured(Event):
    """
    A telemetry snapshot for one tick, with the external anomaly
    already resolved (or explicitly absent).
    """

    event_type: ClassVar[str] = "telemetry.reading"

    run_id: str
    tick: int
    reading: Reading


@dataclass(frozen=True, slots=True)
class VerdictIssued(Event):
    """
    The evaluator's verdict for one tick.
    """

    event_type: ClassVar[str] = "health.verdict"

    run_id: str
    tick: int

    status: HealthStatus
    messages: tuple[VerdictMessage, ...]


@dataclass(frozen=True, slots=True)
class StatusChanged(Event):
    """
    Overall status differs from the previous tick's status.
    """

    event_type: ClassVar[str] = "health.status_changed"

    run_id: str
    tick: int

    previous: HealthStatus
    current: HealthStatus
