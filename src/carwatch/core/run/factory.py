from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from carwatch.anomaly.base import AnomalyChecker, NullAnomalyChecker
from carwatch.anomaly.gemini import GeminiAnomalyChecker
from carwatch.core.config.settings import AppSettings, settings as default_settings
from carwatch.core.run.artifacts import RunArtifacts, artifacts_for
from carwatch.core.run.assembly import RunHandle, build_run
from carwatch.core.run.persist import write_json_atomic
from carwatch.core.run.spec import RunSpec
from carwatch.telemetry.jsonl_source import JsonlTelemetrySource
from carwatch.telemetry.simulator import TelemetrySimulator
from carwatch.telemetry.source import TelemetrySource

log = structlog.get_logger()


class RunFactory:
    """
    Turns a persisted RunSpec into a wired RunHandle.

    - load/save RunSpec (config.json)
    - pick telemetry source, anomaly checker and thresholds from the RunSpec
    - write a wiring snapshot (meta.json) for audit
    """

    def __init__(self, *, runs_dir: Path, app_settings: AppSettings | None = None) -> None:
        self.runs_dir = runs_dir
        self._settings = app_settings or default_settings

    # -----------------------
    # RunSpec I/O
    # -----------------------

    def load_spec(self, *, run_id: str) -> RunSpec:
        art = self._existing(run_id)
        if not art.config_json.exists():
            return RunSpec()
        return RunSpec.model_validate_json(art.config_json.read_text(encoding="utf-8"))

    def save_spec(self, *, run_id: str, spec: RunSpec) -> None:
        art = artifacts_for(runs_dir=self.runs_dir, run_id=run_id)
        art.ensure_dirs()
        write_json_atomic(art.config_json, spec.to_canonical_dict())

    # -----------------------
    # Assembly
    # -----------------------

    def build(self, *, run_id: str, spec: RunSpec) -> RunHandle:
        self._existing(run_id)
        self.save_spec(run_id=run_id, spec=spec)

        source = self.build_source(spec)
        checker = self.build_anomaly_checker(spec)

        try:
            handle = build_run(
                runs_dir=self.runs_dir,
                run_id=run_id,
                source=source,
                anomaly_checker=checker,
                thresholds=spec.rules.to_thresholds(),
                max_ticks=spec.telemetry.max_ticks,
                tick_interval_s=self._settings.tick_interval_s,
            )
            self._write_wiring_snapshot(art=handle.artifacts, spec=spec, handle=handle)
        except Exception:
            checker.close()
            raise
        return handle

    def build_source(self, spec: RunSpec) -> TelemetrySource:
        t = spec.telemetry

        if t.mode == "simulated":
            seed = spec.seed if spec.seed is not None else self._settings.default_seed
            return TelemetrySimulator(seed=seed, max_error_codes=t.max_error_codes)

        if t.mode == "replay_jsonl":
            if t.replay is None:
                raise ValueError("telemetry.replay is required when mode='replay_jsonl'")
            path = Path(t.replay.path)
            if not path.exists():
                raise FileNotFoundError(f"telemetry replay not found: {path}")
            return JsonlTelemetrySource(path=path)

        raise ValueError(f"unsupported telemetry mode: {t.mode!r}")

    def build_anomaly_checker(self, spec: RunSpec) -> AnomalyChecker:
        kind = spec.anomaly.kind

        if kind == "none":
            return NullAnomalyChecker()

        if kind == "gemini":
            key = self._settings.gemini_api_key
            if key is None or not key.get_secret_value():
                raise ValueError("anomaly.kind='gemini' requires CARWATCH_GEMINI_API_KEY")
            return GeminiAnomalyChecker(
                api_key=key.get_secret_value(),
                model=self._settings.gemini_model,
                base_url=self._settings.gemini_base_url,
                timeout_s=self._settings.anomaly_timeout_s,
            )

        raise ValueError(f"unsupported anomaly kind: {kind!r}")

    # -----------------------
    # Helpers
    # -----------------------

    def _existing(self, run_id: str) -> RunArtifacts:
        art = artifacts_for(runs_dir=self.runs_dir, run_id=run_id)
        if not art.run_dir.exists():
            raise FileNotFoundError(f"run not found: {run_id}")
        return art

    def _write_wiring_snapshot(self, *, art: RunArtifacts, spec: RunSpec, handle: RunHandle) -> None:
        meta: dict[str, Any] = {}
        if art.meta_json.exists():
            meta = json.loads(art.meta_json.read_text(encoding="utf-8"))

        meta["wiring"] = {
            "spec_hash": spec.config_hash(),
            "vehicle_id": spec.vehicle_id,
            "telemetry_mode": spec.telemetry.mode,
            "anomaly_kind": spec.anomaly.kind,
            "rules": [r.name for r in handle.monitor.evaluator.rules],
            "components": [{"type": type(c).__name__, "module": type(c).__module__} for c in handle.components],
            "subscriptions": [
                {"component": w.component, "event_type": w.subscription.event_type}
                for w in handle.wiring.subscriptions
            ],
        }
        write_json_atomic(art.meta_json, meta)

        log.info("run.wiring_snapshot_written", run_id=handle.run_id, spec_hash=meta["wiring"]["spec_hash"])
