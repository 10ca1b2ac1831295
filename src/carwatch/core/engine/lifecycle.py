from __future__ import annotations

import structlog

from carwatch.core.engine.state import EngineState
from carwatch.core.events.bus import EventBus
from carwatch.core.events.system import EngineError, RunStarted, RunStopped
from carwatch.core.logging.setup import bind_context

log = structlog.get_logger()


class EngineLifecycle:
    """
    Start/stop transitions of a monitoring run, each announced on the bus.

    start() publishes RunStarted; components such as the tick driver react to
    it, so the whole run may execute inside this call. A crashed tick goes
    through fail(), which records EngineError and stops the run as "failed".
    """

    def __init__(self, *, bus: EventBus, state: EngineState) -> None:
        self._bus = bus
        self._state = state

    @property
    def state(self) -> EngineState:
        return self._state

    def start(self) -> None:
        if self._state.is_running:
            raise RuntimeError("engine already running")

        bind_context(run_id=self._state.run_id, component="monitor")

        self._state.reset()
        # must be running before a sequence can be allocated
        self._state.is_running = True

        self._bus.publish(RunStarted.create(run_id=self._state.run_id, sequence=self._state.next_sequence()))
        log.info("engine.started", run_id=self._state.run_id)

    def fail(self, exc: BaseException) -> None:
        """
        Call from an except block: publishes EngineError for the current tick,
        then stops the run. The run is stopped even if a handler of the
        EngineError raises.
        """
        if not self._state.is_running:
            raise RuntimeError("engine not running")

        self._state.error_type = type(exc).__name__
        try:
            self._bus.publish(
                EngineError.create(
                    run_id=self._state.run_id,
                    tick=self._state.tick,
                    error_type=self._state.error_type,
                    error_message=str(exc),
                    sequence=self._state.next_sequence(),
                )
            )
            log.exception("engine.crashed", run_id=self._state.run_id, tick=self._state.tick)
        finally:
            self.stop()

    def stop(self) -> None:
        if not self._state.is_running:
            raise RuntimeError("engine not running")

        seq = self._state.next_sequence()
        self._state.is_running = False

        self._bus.publish(
            RunStopped.create(
                run_id=self._state.run_id,
                ticks=self._state.tick,
                outcome=self._state.outcome,
                sequence=seq,
            )
        )
        log.info("engine.stopped", run_id=self._state.run_id, ticks=self._state.tick, outcome=self._state.outcome)
