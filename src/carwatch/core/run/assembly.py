from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import structlog

from carwatch.anomaly.base import AnomalyChecker, NullAnomalyChecker
from carwatch.core.engine.lifecycle import EngineLifecycle
from carwatch.core.engine.router import EngineRouter, RouterWiring
from carwatch.core.engine.state import EngineState
from carwatch.core.engine.tick_driver import TickDriverComponent
from carwatch.core.events.base import Event
from carwatch.core.events.bus import EventBus, EventHandler
from carwatch.core.events.health import ReadingCaptured, StatusChanged, VerdictIssued
from carwatch.core.events.system import EngineError, EngineTick, RunStarted, RunStopped
from carwatch.core.run.artifacts import RunArtifacts, artifacts_for
from carwatch.detection.component import HealthMonitorComponent
from carwatch.detection.evaluator import HealthEvaluator
from carwatch.detection.rules import RuleThresholds
from carwatch.storage.jsonl import JsonlEventStore
from carwatch.telemetry.adapter import TelemetryAdapter
from carwatch.telemetry.source import TelemetrySource

log = structlog.get_logger()


@dataclass(slots=True)
class EventLogComponent:
    """
    Persists every run event to events.jsonl in publish order.
    """

    store: JsonlEventStore

    event_types: tuple[str, ...] = (
        RunStarted.event_type,
        RunStopped.event_type,
        EngineTick.event_type,
        EngineError.event_type,
        ReadingCaptured.event_type,
        VerdictIssued.event_type,
        StatusChanged.event_type,
    )

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        subs: list[tuple[str, EventHandler]] = [(et, self._on_event) for et in self.event_types]
        # release the file handle once the run is over
        subs.append((RunStopped.event_type, self._on_stopped))
        return subs

    def _on_event(self, e: Event) -> None:
        self.store.append(e)

    def _on_stopped(self, e: Event) -> None:
        self.store.close()


@dataclass(frozen=True, slots=True)
class RunHandle:
    """
    A fully wired run in this process.

    monitor is exposed so callers can read the latest verdict and persist
    the health series when the run stops. Call close() when done with it.
    """

    run_id: str
    artifacts: RunArtifacts
    bus: EventBus
    state: EngineState
    lifecycle: EngineLifecycle
    wiring: RouterWiring
    components: tuple[object, ...]
    monitor: HealthMonitorComponent
    telemetry: TelemetryAdapter
    eventlog: EventLogComponent
    anomaly_checker: AnomalyChecker

    def start(self) -> None:
        """
        Run every tick. A tick that raises is recorded as EngineError, the run
        is stopped as "failed", its resources are released and the error is
        re-raised.
        """
        if self.state.is_running:
            raise RuntimeError("engine already running")

        try:
            self.lifecycle.start()
        except Exception as exc:
            try:
                if self.state.is_running:
                    self.lifecycle.fail(exc)
            finally:
                self.close()
            raise

    def close(self) -> None:
        """
        Stop the run if it is still live, then release the event log and the
        anomaly checker. Safe to call more than once.
        """
        try:
            if self.state.is_running:
                self.lifecycle.stop()
        finally:
            self.eventlog.store.close()
            self.anomaly_checker.close()


def build_run(
    *,
    runs_dir: Path,
    run_id: str,
    source: TelemetrySource,
    anomaly_checker: AnomalyChecker | None = None,
    thresholds: RuleThresholds | None = None,
    max_ticks: int = 60,
    tick_interval_s: float = 0.0,
    extra_components: Iterable[object] = (),
) -> RunHandle:
    """
    Canonical assembly. Wiring order fixes dispatch order:

      RunStarted -> tick driver emits EngineTick -> telemetry adapter emits
      ReadingCaptured -> health monitor emits VerdictIssued (+ StatusChanged)

    The event log is wired first so it records each event before anything
    reacts to it.
    """
    art = artifacts_for(runs_dir=runs_dir, run_id=run_id)
    art.ensure_dirs()

    bus = EventBus()
    state = EngineState(run_id=run_id)
    lifecycle = EngineLifecycle(bus=bus, state=state)

    eventlog = EventLogComponent(store=JsonlEventStore(path=art.events_jsonl, fsync=False))
    tick_driver = TickDriverComponent(bus=bus, state=state, max_ticks=max_ticks, tick_interval_s=tick_interval_s)
    checker = anomaly_checker or NullAnomalyChecker()
    telemetry = TelemetryAdapter(bus=bus, state=state, source=source, anomaly_checker=checker)
    monitor = HealthMonitorComponent(bus=bus, state=state, evaluator=HealthEvaluator(thresholds=thresholds))

    components: list[object] = [eventlog, tick_driver, telemetry, monitor, *extra_components]
    wiring = EngineRouter(bus=bus).register(components)

    log.info(
        "run.assembled",
        run_id=run_id,
        max_ticks=max_ticks,
        components=[type(c).__name__ for c in components],
        artifacts_dir=str(art.run_dir),
    )

    return RunHandle(
        run_id=run_id,
        artifacts=art,
        bus=bus,
        state=state,
        lifecycle=lifecycle,
        wiring=wiring,
        components=tuple(components),
        monitor=monitor,
        telemetry=telemetry,
        eventlog=eventlog,
        anomaly_checker=checker,
    )
