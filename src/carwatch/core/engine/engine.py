from __future__ import annotations

import time
from typing import Iterable, Optional

from carwatch.core.engine.lifecycle import EngineLifecycle
from carwatch.core.engine.router import EngineRouter, EventComponent, RouterWiring
from carwatch.core.engine.state import EngineState
from carwatch.core.events.bus import EventBus
from carwatch.core.events.system import EngineTick


class Engine:
    """
    Periodic tick loop for a monitoring run.

    Each iteration publishes one EngineTick; the telemetry adapter answers it
    with a reading and the health monitor with a verdict, all synchronously,
    so tick N is fully evaluated before tick N+1 exists.
    """

    def __init__(
        self,
        *,
        run_id: str,
        bus: EventBus,
        components: Optional[Iterable[EventComponent]] = None,
    ) -> None:
        self._bus = bus
        self._state = EngineState(run_id=run_id)
        self._lifecycle = EngineLifecycle(bus=bus, state=self._state)
        self._wiring: RouterWiring | None = None

        if components is not None:
            self._wiring = EngineRouter(bus=bus).register(components)

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def wiring(self) -> RouterWiring | None:
        return self._wiring

    def run(self, *, max_ticks: int, tick_interval_s: float = 0.0) -> None:
        if max_ticks <= 0:
            raise ValueError("max_ticks must be > 0")
        if tick_interval_s < 0:
            raise ValueError("tick_interval_s must be >= 0")

        self._lifecycle.start()

        try:
            while self._state.is_running and self._state.tick < max_ticks:
                tick = self._state.next_tick()
                self._bus.publish(
                    EngineTick.create(
                        run_id=self._state.run_id,
                        tick=tick,
                        sequence=self._state.next_sequence(),
                    )
                )
                if tick_interval_s and self._state.tick < max_ticks:
                    time.sleep(tick_interval_s)

        except Exception as exc:
            self._lifecycle.fail(exc)
            raise

        finally:
            if self._state.is_running:
                self._lifecycle.stop()
