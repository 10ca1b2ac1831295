from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Process-wide configuration for the health monitor.

    Per-run knobs (telemetry mode, rule thresholds, anomaly checker) live in
    RunSpec; this class only holds what is shared by every run:
    - environment selection and logging
    - run artifact location and default seed
    - credentials and endpoint for the Gemini anomaly checker
    """

    model_config = SettingsConfigDict(
        env_prefix="CARWATCH_",
        env_file=".env",
        extra="ignore",
    )

    # ---- Environment -------------------------------------------------

    env: Literal["local", "staging", "prod"] = "local"

    # ---- Logging -----------------------------------------------------

    log_level: str = "INFO"

    # ---- Runs --------------------------------------------------------

    runs_dir: Path = Field(
        default=Path("runs"),
        description="Root directory for run artifacts",
    )

    default_seed: int = Field(
        default=42,
        description="Default seed for the telemetry simulator",
    )

    tick_interval_s: float = Field(
        default=0.0,
        ge=0.0,
        description="Pause between engine ticks (0 = as fast as possible)",
    )

    # ---- External anomaly checker ------------------------------------

    gemini_api_key: SecretStr | None = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    anomaly_timeout_s: float = Field(default=10.0, gt=0.0)


settings = AppSettings()
