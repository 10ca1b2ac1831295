from __future__ import annotations

from dataclasses import replace
from typing import Sequence

import structlog

from carwatch.anomaly.base import AnomalyChecker, NullAnomalyChecker
from carwatch.core.engine.state import EngineState
from carwatch.core.events.base import Event
from carwatch.core.events.bus import EventBus, EventHandler
from carwatch.core.events.health import ReadingCaptured
from carwatch.core.events.system import EngineTick
from carwatch.detection.models import Reading
from carwatch.telemetry.source import TelemetrySource

log = structlog.get_logger()


class TelemetryAdapter:
    """
    Turns engine ticks into ReadingCaptured events.

    Per tick:
      - take the next Reading from the source (one per tick)
      - if it carries no external verdict, ask the anomaly checker
      - publish the completed reading with the engine's next sequence
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        state: EngineState,
        source: TelemetrySource,
        anomaly_checker: AnomalyChecker | None = None,
    ) -> None:
        self._bus = bus
        self._state = state
        self._it = iter(source)
        self._checker = anomaly_checker or NullAnomalyChecker()
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        return [(EngineTick.event_type, self._on_tick)]

    def _on_tick(self, e: Event) -> None:
        if self._exhausted or not isinstance(e, EngineTick):
            return

        try:
            reading: Reading = next(self._it)
        except StopIteration:
            self._exhausted = True
            log.info("telemetry.exhausted", run_id=self._state.run_id, tick=e.tick)
            return

        if reading.external_anomaly is None:
            anomaly = self._checker.assess(reading)
            if anomaly is not None:
                reading = replace(reading, external_anomaly=anomaly)

        self._bus.publish(
            ReadingCaptured.create(
                run_id=self._state.run_id,
                tick=e.tick,
                reading=reading,
                sequence=self._state.next_sequence(),
            )
        )
