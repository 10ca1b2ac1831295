from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from carwatch.detection.models import MAX_ERROR_CODES
from carwatch.detection.rules import ENGINE_MISFIRE_CODE, TRANSMISSION_ERROR_CODES, RuleThresholds

TelemetryMode = Literal["simulated", "replay_jsonl"]
AnomalyKind = Literal["none", "gemini"]


# -----------------------
# RunSpec building blocks
# -----------------------

class ReplaySpec(BaseModel):
    path: str = Field(..., description="Path to a JSONL file of recorded readings")


class TelemetrySpec(BaseModel):
    mode: TelemetryMode = Field(default="simulated")
    replay: Optional[ReplaySpec] = Field(default=None)

    max_ticks: int = Field(default=60, ge=1, description="Ticks to run; ticks after a replay is exhausted carry no reading")
    max_error_codes: int = Field(default=MAX_ERROR_CODES, ge=1, le=MAX_ERROR_CODES)

    @model_validator(mode="after")
    def _validate_replay(self) -> "TelemetrySpec":
        if self.mode == "replay_jsonl" and self.replay is None:
            raise ValueError("telemetry.replay is required when mode='replay_jsonl'")
        return self


class AnomalySpec(BaseModel):
    kind: AnomalyKind = Field(default="none")


class RuleThresholdsSpec(BaseModel):
    """
    Overridable rule thresholds; defaults are the built-in rule set.
    """

    high_temp_c: int = 105
    high_temp_limit: int = Field(5, ge=1)

    engine_error_code: str = ENGINE_MISFIRE_CODE
    transmission_error_codes: list[str] = Field(default_factory=lambda: list(TRANSMISSION_ERROR_CODES))
    frequent_error_count: int = Field(3, ge=1)

    rough_gear_min: int = Field(7, ge=1, le=10)
    rough_gear_limit: int = Field(3, ge=1)

    high_sound_db: int = 85
    high_sound_limit: int = Field(4, ge=1)

    low_fluid_max: int = Field(3, ge=1, le=10)
    low_fluid_limit: int = Field(2, ge=1)

    leakage_limit: int = Field(1, ge=1)

    def to_thresholds(self) -> RuleThresholds:
        d = self.model_dump()
        d["transmission_error_codes"] = tuple(d["transmission_error_codes"])
        return RuleThresholds(**d)


# -----------------------
# The RunSpec (top-level)
# -----------------------

class RunSpec(BaseModel):
    """
    Canonical configuration of one monitoring run, persisted as config.json.

    - versioned schema
    - deterministic config hash (run fingerprint)
    - explicit telemetry source, anomaly checker and rule thresholds
    """

    schema_version: int = Field(default=1, description="RunSpec schema version")

    vehicle_id: str = Field(default="demo-vehicle")
    created_at_utc: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    telemetry: TelemetrySpec = Field(default_factory=TelemetrySpec)
    anomaly: AnomalySpec = Field(default_factory=AnomalySpec)
    rules: RuleThresholdsSpec = Field(default_factory=RuleThresholdsSpec)

    seed: Optional[int] = Field(default=None, description="Simulator seed override")
    tags: dict[str, str] = Field(default_factory=dict)

    def to_canonical_dict(self) -> dict:
        d = self.model_dump()
        d["created_at_utc"] = self.created_at_utc.astimezone(timezone.utc).isoformat()
        return d

    def config_hash(self) -> str:
        blob = json.dumps(self.to_canonical_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        return hashlib.sha256(blob.encode("utf-8")).hexdigest()
