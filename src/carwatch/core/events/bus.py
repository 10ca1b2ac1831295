from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, Iterable, TypeAlias

import structlog

from carwatch.core.events.base import Event

log = structlog.get_logger()

EventHandler: TypeAlias = Callable[[Event], None]


@dataclass(frozen=True)
class Subscription:
    event_type: str
    handler: EventHandler


class EventBus:
    """
    Synchronous in-process event bus.

    - handlers for one event_type run in subscription order
    - a handler exception propagates to the publisher (fail-fast)
    - publishing from inside a handler dispatches depth-first, so a tick's
      reading -> verdict chain completes before the next tick is published
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, *, event_type: str, handler: EventHandler) -> Subscription:
        if not event_type:
            raise ValueError("event_type must be non-empty")
        self._handlers[event_type].append(handler)
        log.debug("bus.subscribed", event_type=event_type, handler=getattr(handler, "__name__", "handler"))
        return Subscription(event_type=event_type, handler=handler)

    def publish(self, event: Event) -> None:
        handlers = tuple(self._handlers.get(event.event_type, ()))
        log.debug(
            "bus.publish",
            event_type=event.event_type,
            sequence=event.sequence,
            handlers=len(handlers),
        )
        for handler in handlers:
            handler(event)

    def subscribers_for(self, event_type: str) -> Iterable[EventHandler]:
        return tuple(self._handlers.get(event_type, ()))
