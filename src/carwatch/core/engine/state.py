from __future__ import annotations

from dataclasses import dataclass

from carwatch.core.events.system import RunOutcome


@dataclass(slots=True)
class EngineState:
    """
    Run-scoped counters and outcome.

    - tick: evaluation cycle number (1-based once running)
    - sequence: ordering key shared by every event of the run
    - error_type: exception class of the tick that crashed the run, if any

    Counters only advance while running, so nothing is emitted after stop.
    """

    run_id: str
    tick: int = 0
    sequence: int = 0
    is_running: bool = False
    error_type: str | None = None

    @property
    def outcome(self) -> RunOutcome:
        return "failed" if self.error_type is not None else "completed"

    def _require_running(self, what: str) -> None:
        if not self.is_running:
            raise RuntimeError(f"cannot advance {what} when engine is not running")

    def next_tick(self) -> int:
        self._require_running("tick")
        self.tick += 1
        return self.tick

    def next_sequence(self) -> int:
        self._require_running("sequence")
        self.sequence += 1
        return self.sequence

    def reset(self) -> None:
        self.tick = 0
        self.sequence = 0
        self.error_type = None
