from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence

from carwatch.detection.models import Reading


class TelemetrySource(Protocol):
    """
    A stream of Readings, one consumed per engine tick.

    The source owns sampling and error-code history trimming; finite sources
    simply stop yielding.
    """

    def __iter__(self) -> Iterator[Reading]:
        ...


@dataclass(frozen=True)
class InMemoryTelemetrySource:
    """
    Fixed list of readings, for tests and scripted scenarios.
    """

    readings: Sequence[Reading]

    def __iter__(self) -> Iterator[Reading]:
        yield from self.readings
