from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from carwatch.core.events.bus import EventBus, EventHandler, Subscription


class EventComponent(Protocol):
    """
    Anything that wires handlers onto the bus: telemetry adapter, health
    monitor, event log, tick driver, test collectors.
    """

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        ...


@dataclass(frozen=True, slots=True)
class WiredSubscription:
    component: str
    subscription: Subscription


@dataclass(frozen=True, slots=True)
class RouterWiring:
    """
    What register() wired, in wiring order. Persisted in the run's meta.json.
    """

    subscriptions: tuple[WiredSubscription, ...]

    def event_types(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(w.subscription.event_type for w in self.subscriptions))


class EngineRouter:
    """
    Wires components onto an EventBus.

    Components are wired in the given order and each component's
    subscriptions keep their order, so handler dispatch order is reproducible
    (e.g. the event log sees a reading before the verdict derived from it).
    """

    def __init__(self, *, bus: EventBus) -> None:
        self._bus = bus

    def register(self, components: Iterable[EventComponent]) -> RouterWiring:
        wired: list[WiredSubscription] = []
        # (event_type, id(handler)) already wired
        seen: set[tuple[str, int]] = set()

        for component in components:
            name = type(component).__name__

            subs = component.subscriptions()
            if not isinstance(subs, Sequence):
                raise TypeError(f"{name}.subscriptions() must return a Sequence")

            for event_type, handler in subs:
                if not event_type:
                    raise ValueError(f"{name} produced empty event_type")

                key = (event_type, id(handler))
                if key in seen:
                    raise RuntimeError(f"duplicate subscription: component={name} event_type={event_type}")
                seen.add(key)

                sub = self._bus.subscribe(event_type=event_type, handler=handler)
                wired.append(WiredSubscription(component=name, subscription=sub))

        return RouterWiring(subscriptions=tuple(wired))
