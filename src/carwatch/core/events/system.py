from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Literal

from carwatch.core.events.base import Event

# "failed" when a tick raised and the run was stopped by the crash handler
RunOutcome = Literal["completed", "failed"]


@dataclass(frozen=True, slots=True)
class RunStarted(Event):
    """
    Emitted when a monitoring run begins.
    """

    event_type: ClassVar[str] = "system.run_started"

    run_id: str


@dataclass(frozen=True, slots=True)
class RunStopped(Event):
    """
    Emitted once per run, after the last tick.

    ticks is the number of evaluation cycles that were started, including a
    crashed one.
    """

    event_type: ClassVar[str] = "system.run_stopped"

    run_id: str
    ticks: int
    outcome: RunOutcome = "completed"


@dataclass(frozen=True, slots=True)
class EngineTick(Event):
    """
    One discrete evaluation cycle: telemetry sampled once per tick.
    """

    event_type: ClassVar[str] = "system.engine_tick"

    run_id: str
    tick: int


@dataclass(frozen=True, slots=True)
class EngineError(Event):
    event_type: ClassVar[str] = "system.engine_error"

    run_id: str
    tick: int

    error_type: str
    error_message: str
