from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence

from carwatch.core.engine.state import EngineState
from carwatch.core.events.base import Event
from carwatch.core.events.bus import EventBus, EventHandler
from carwatch.core.events.system import EngineTick, RunStarted


@dataclass(slots=True)
class TickDriverComponent:
    """
    Emits max_ticks EngineTick events as soon as the run starts.

    Used by assembled runs (API / factory), where RunHandle.start() is the
    only entry point and there is no Engine.run loop. A tick that raises
    propagates out of start() with the run still live; RunHandle handles it.
    """

    bus: EventBus
    state: EngineState
    max_ticks: int = 60
    tick_interval_s: float = 0.0

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        return [(RunStarted.event_type, self._on_run_started)]

    def _on_run_started(self, e: Event) -> None:
        assert isinstance(e, RunStarted)
        for i in range(self.max_ticks):
            tick = self.state.next_tick()
            self.bus.publish(
                EngineTick.create(
                    run_id=self.state.run_id,
                    tick=tick,
                    sequence=self.state.next_sequence(),
                )
            )
            if self.tick_interval_s and i + 1 < self.max_ticks:
                time.sleep(self.tick_interval_s)
