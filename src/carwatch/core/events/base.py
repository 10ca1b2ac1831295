from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, TypeVar
from uuid import UUID, uuid4

E = TypeVar("E", bound="Event")


@dataclass(frozen=True, slots=True, kw_only=True)
class Event:
    """
    Base class for everything published on the EventBus.

    - event_type: routing key (class-level, never serialized as a field)
    - event_id / timestamp_utc: identity and wall-clock provenance
    - sequence: monotonic ordering allocated from EngineState
    """

    event_type: ClassVar[str] = "event"

    sequence: int
    event_id: UUID = field(default_factory=uuid4)
    timestamp_utc: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def create(cls: type[E], **fields: Any) -> E:
        if fields.get("sequence", 0) < 0:
            raise ValueError("sequence must be >= 0")
        return cls(**fields)
