from __future__ import annotations

import random
from collections import deque
from typing import Iterator

from carwatch.detection.models import MAX_ERROR_CODES, Reading
from carwatch.detection.rules import ENGINE_MISFIRE_CODE, TRANSMISSION_ERROR_CODES

# Misfire is listed twice so it is drawn more often than the others.
SIMULATED_ERROR_CODES: tuple[str, ...] = (
    "P0101",
    "P0420",
    ENGINE_MISFIRE_CODE,
    "P0000",
    ENGINE_MISFIRE_CODE,
    *TRANSMISSION_ERROR_CODES,
    "U0100",
)


class TelemetrySimulator:
    """
    Seeded synthetic telemetry, one Reading per iteration, never exhausted.

    Per tick:
      - temperature uniform in 85..115
      - 15% chance to log one more error code (history keeps the newest
        max_error_codes), otherwise the history clears
      - gear smoothness rough (6..10) 20% of the time, else 1..5
      - acceleration sound loud (80..95) 18% of the time, else 55..75
      - each fluid low (1..3) 10% of the time, else 4..10
      - leak flagged 5% of the time

    The same seed always yields the same stream.
    """

    ERROR_CODE_CHANCE = 0.15
    ROUGH_GEAR_CHANCE = 0.20
    LOUD_CHANCE = 0.18
    LOW_FLUID_CHANCE = 0.10
    LEAK_CHANCE = 0.05

    LOW_FLUID_MAX = 3

    def __init__(self, *, seed: int, max_error_codes: int = MAX_ERROR_CODES) -> None:
        if not 1 <= max_error_codes <= MAX_ERROR_CODES:
            raise ValueError(f"max_error_codes must be in [1, {MAX_ERROR_CODES}]")
        self._seed = seed
        self._max_error_codes = max_error_codes

    @property
    def seed(self) -> int:
        return self._seed

    def __iter__(self) -> Iterator[Reading]:
        rng = random.Random(self._seed)
        history: deque[str] = deque(maxlen=self._max_error_codes)

        while True:
            temp = rng.randint(85, 115)

            if rng.random() < self.ERROR_CODE_CHANCE:
                history.append(rng.choice(SIMULATED_ERROR_CODES))
            else:
                history.clear()

            gear = rng.randint(6, 10) if rng.random() < self.ROUGH_GEAR_CHANCE else rng.randint(1, 5)
            sound = rng.randint(80, 95) if rng.random() < self.LOUD_CHANCE else rng.randint(55, 75)

            yield Reading(
                engine_temp_c=temp,
                error_codes=tuple(history),
                gear_smoothness=gear,
                accel_sound_db=sound,
                transmission_oil=self._fluid_level(rng),
                engine_oil=self._fluid_level(rng),
                coolant=self._fluid_level(rng),
                leak_detected=rng.random() < self.LEAK_CHANCE,
            )

    def _fluid_level(self, rng: random.Random) -> int:
        if rng.random() < self.LOW_FLUID_CHANCE:
            return rng.randint(1, self.LOW_FLUID_MAX)
        return rng.randint(self.LOW_FLUID_MAX + 1, 10)
