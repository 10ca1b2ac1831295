from __future__ import annotations

from typing import Sequence

import structlog

from carwatch.core.engine.state import EngineState
from carwatch.core.events.base import Event
from carwatch.core.events.bus import EventBus, EventHandler
from carwatch.core.events.health import ReadingCaptured, StatusChanged, VerdictIssued
from carwatch.detection.evaluator import HealthEvaluator
from carwatch.detection.models import HealthStatus, Verdict
from carwatch.evaluation.health_summary import HealthSeries

log = structlog.get_logger()


class HealthMonitorComponent:
    """
    Bus-facing wrapper around a HealthEvaluator.

    Responsibilities:
      - evaluate each ReadingCaptured exactly once
      - publish VerdictIssued, plus StatusChanged on status transitions
      - keep the latest verdict for the API
      - record every verdict into a HealthSeries for run artifacts
    """

    def __init__(self, *, bus: EventBus, state: EngineState, evaluator: HealthEvaluator | None = None) -> None:
        self._bus = bus
        self._state = state
        self.evaluator = evaluator or HealthEvaluator()
        self.series = HealthSeries.empty()

        self._latest: Verdict | None = None
        self._latest_tick: int | None = None

    @property
    def latest(self) -> Verdict | None:
        return self._latest

    @property
    def latest_tick(self) -> int | None:
        return self._latest_tick

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        return [(ReadingCaptured.event_type, self._on_reading)]

    def _on_reading(self, e: Event) -> None:
        assert isinstance(e, ReadingCaptured)

        previous: HealthStatus = self._latest.status if self._latest is not None else "normal"
        verdict = self.evaluator.evaluate(e.reading)

        self._latest = verdict
        self._latest_tick = e.tick
        self.series.append(tick=e.tick, verdict=verdict)

        self._bus.publish(
            VerdictIssued.create(
                run_id=e.run_id,
                tick=e.tick,
                status=verdict.status,
                messages=verdict.messages,
                sequence=self._state.next_sequence(),
            )
        )

        if verdict.status != previous:
            self._bus.publish(
                StatusChanged.create(
                    run_id=e.run_id,
                    tick=e.tick,
                    previous=previous,
                    current=verdict.status,
                    sequence=self._state.next_sequence(),
                )
            )
            log.info("health.status_changed", tick=e.tick, previous=previous, current=verdict.status)

        if verdict.status == "serious_problem":
            log.warning("health.verdict", tick=e.tick, status=verdict.status, details=verdict.details)
        else:
            log.debug("health.verdict", tick=e.tick, status=verdict.status)
