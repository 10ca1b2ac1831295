"""
Gemini-backed anomaly checker.

Asks the model whether the combination of readings suggests a problem the
fixed rules do not cover, using a JSON response schema. Every failure mode
(network, HTTP status, empty body, unexpected envelope, bad candidate JSON)
is folded into a "no anomaly" verdict carrying the reason.
"""
from __future__ import annotations

from typing import Any

import httpx
import orjson
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from carwatch.detection.models import ExternalAnomaly, Reading

log = structlog.get_logger()

NO_ANOMALY_DETAILS = "No unusual patterns detected."

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "anomalyDetected": {"type": "BOOLEAN"},
        "details": {"type": "STRING"},
    },
    "propertyOrdering": ["anomalyDetected", "details"],
}


class AnomalyAssessment(BaseModel):
    """
    Candidate payload the model is asked to produce.
    """

    model_config = ConfigDict(populate_by_name=True)

    anomaly_detected: bool = Field(alias="anomalyDetected")
    details: str


def build_prompt(reading: Reading) -> str:
    codes = ", ".join(reading.error_codes) or "None"
    return (
        "Analyze the following car sensor data and determine if there is an unforeseen anomaly "
        'or a "new problem" not covered by standard error codes. Respond with a JSON object.\n'
        "Current Car Data:\n"
        f"- Engine Temperature: {reading.engine_temp_c}°C\n"
        f"- Error Codes: {codes}\n"
        f"- Gear Change Smoothness: {reading.gear_smoothness}/10\n"
        f"- Acceleration Sound Level: {reading.accel_sound_db} dB\n"
        f"- Transmission Oil Level: {reading.transmission_oil}/10\n"
        f"- Engine Oil Level: {reading.engine_oil}/10\n"
        f"- Coolant Level: {reading.coolant}/10\n"
        f"- Leakage Detected: {'Yes' if reading.leak_detected else 'No'}\n\n"
        "Consider if the combination of these parameters suggests something unusual or a developing issue.\n"
        "Output JSON schema:\n"
        '{"anomalyDetected": boolean, "details": string}\n'
        f'If no anomaly, set anomalyDetected to false and details to "{NO_ANOMALY_DETAILS}"'
    )


def _no_anomaly(reason: str) -> ExternalAnomaly:
    return ExternalAnomaly(flag=False, details=reason)


class GeminiAnomalyChecker:
    """
    Synchronous client for the Gemini generateContent endpoint.

    Pass `client` to inject a configured httpx.Client (tests use a
    MockTransport); otherwise one is created and owned by the checker.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must be non-empty")

        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout_s)

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "GeminiAnomalyChecker":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def build_payload(self, reading: Reading) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": build_prompt(reading)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def assess(self, reading: Reading) -> ExternalAnomaly | None:
        try:
            response = self._client.post(
                self._url,
                params={"key": self._api_key},
                json=self.build_payload(reading),
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("anomaly.check_failed", model=self._model, error_type=type(exc).__name__, error=str(exc))
            return _no_anomaly(f"AI analysis failed: {exc}")

        return parse_generate_content(response.content)


def parse_generate_content(body: bytes) -> ExternalAnomaly:
    """
    Normalize a generateContent response body into an ExternalAnomaly.
    """
    if not body.strip():
        log.warning("anomaly.empty_body")
        return _no_anomaly("AI returned empty response body.")

    try:
        envelope = orjson.loads(body)
    except orjson.JSONDecodeError as exc:
        log.warning("anomaly.malformed_envelope", error=str(exc))
        return _no_anomaly("AI response malformed or incomplete.")

    text = _first_candidate_text(envelope)
    if text is None:
        log.warning("anomaly.no_candidates")
        return _no_anomaly("AI response structure unexpected or no candidates.")
    if not text:
        log.warning("anomaly.empty_candidate")
        return _no_anomaly("AI candidate returned empty text.")

    try:
        assessment = AnomalyAssessment.model_validate_json(text)
    except ValidationError as exc:
        log.warning("anomaly.candidate_format_error", errors=exc.error_count())
        return _no_anomaly("AI candidate response format error.")

    log.debug("anomaly.assessed", flag=assessment.anomaly_detected)
    return ExternalAnomaly(flag=assessment.anomaly_detected, details=assessment.details)


def _first_candidate_text(envelope: Any) -> str | None:
    """
    candidates[0].content.parts[0].text, or None when any level is missing.
    """
    if not isinstance(envelope, dict):
        return None
    candidates = envelope.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) else ""
