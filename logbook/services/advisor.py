from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from logbook.core.config import Settings
from logbook.schemas.entities import Machine
from logbook.schemas.records import LogRecord, MaintenanceRecord, TemperatureRecord

MISSING_KEY_MESSAGE = "API Key not configured."
ADVICE_UNAVAILABLE_MESSAGE = "Could not retrieve AI advice at this time."
REPORT_UNAVAILABLE_MESSAGE = "Error generating report."
REPORT_RECORD_LIMIT = 10

_CODE_FENCE = re.compile(r"```(?:json)?")


class AdviceError(RuntimeError):
    def __init__(self, *, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Advice API error {status_code}: {detail}")


@dataclass(frozen=True)
class AnomalyVerdict:
    is_anomaly: bool
    message: str


class AdviceService:
    """Thin client for the generative ``generateContent`` endpoint.

    Every public call degrades to a neutral result instead of raising.
    """

    def __init__(self, *, settings: Settings, api_key_provider: Callable[[], str]):
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._model = settings.gemini_model
        self._timeout_seconds = settings.gemini_timeout_seconds
        self._api_key_provider = api_key_provider
        self._logger = logging.getLogger("logbook.advisor")

    @property
    def configured(self) -> bool:
        return self._api_key() != ""

    def analyze_maintenance_issue(
        self,
        equipment_name: str,
        description: str,
        photo_data: str | None = None,
        language: str = "English",
        equipment_kind: str = "refrigeration",
    ) -> str:
        if not self.configured:
            return MISSING_KEY_MESSAGE

        prompt = (
            f"You are an expert industrial {equipment_kind} technician.\n"
            f'A user reported an issue with "{equipment_name}".\n'
            f'Issue description: "{description}".\n'
        )
        if photo_data:
            prompt += "The user has also attached a photo of the issue (see attached).\n"
        prompt += (
            "\nProvide a concise, 3-step troubleshooting guide. Focus on safety and practical "
            "immediate actions. If looking at the photo, identify the specific component if possible."
        )
        if language.lower() == "myanmar":
            prompt += (
                "\n\nIMPORTANT: Please provide the response in Myanmar language (Burmese). "
                "Use clear, professional terminology suitable for technicians."
            )

        parts: list[dict[str, Any]] = [{"text": prompt}]
        image = _base64_payload(photo_data)
        if image:
            parts.append({"inline_data": {"mime_type": "image/jpeg", "data": image}})

        try:
            text = self._generate(parts)
        except AdviceError as exc:
            self._logger.warning("maintenance advice failed: %s", exc)
            return ADVICE_UNAVAILABLE_MESSAGE
        return text or "No advice available."

    def detect_anomaly(self, current_temp: float, setpoint: float, machine_type: str) -> AnomalyVerdict:
        if not self.configured:
            return AnomalyVerdict(is_anomaly=False, message="")

        prompt = (
            "Evaluate this refrigeration reading.\n"
            f"Machine Type: {machine_type}\n"
            f"Current Temperature: {current_temp}°C\n"
            f"Setpoint: {setpoint}°C\n\n"
            "Is this a dangerous anomaly that requires immediate attention? Return JSON."
        )
        generation_config = {
            "responseMimeType": "application/json",
            "responseSchema": {
                "type": "OBJECT",
                "properties": {
                    "isAnomaly": {"type": "BOOLEAN"},
                    "message": {
                        "type": "STRING",
                        "description": "Short warning message if anomaly, else 'Normal'",
                    },
                },
            },
        }
        try:
            text = self._generate([{"text": prompt}], generation_config=generation_config)
            payload = json.loads(strip_code_fences(text) or "{}")
        except (AdviceError, json.JSONDecodeError) as exc:
            self._logger.warning("anomaly check failed: %s", exc)
            return AnomalyVerdict(is_anomaly=False, message="")
        if not isinstance(payload, dict):
            return AnomalyVerdict(is_anomaly=False, message="")
        return AnomalyVerdict(
            is_anomaly=bool(payload.get("isAnomaly") or False),
            message=str(payload.get("message") or ""),
        )

    def generate_daily_report(self, records: Sequence[LogRecord], machine: Machine) -> str:
        if not self.configured:
            return "API Key missing."

        recent = [
            record
            for record in records
            if isinstance(record, (TemperatureRecord, MaintenanceRecord))
            and record.machine_id == machine.id
        ][-REPORT_RECORD_LIMIT:]
        summary: list[dict[str, Any]] = []
        for record in recent:
            if isinstance(record, TemperatureRecord):
                summary.append(
                    {
                        "time": record.timestamp.isoformat(),
                        "temp": record.current_temp,
                        "setpoint": record.setpoint_temp,
                    }
                )
            else:
                summary.append({"time": record.timestamp.isoformat(), "issue": record.issue_description})

        prompt = (
            f"Analyze these recent logs for {machine.name} ({machine.type}).\n"
            f"Default Setpoint: {machine.default_setpoint}.\n\n"
            f"Logs:\n{json.dumps(summary)}\n\n"
            "Provide a brief 1-paragraph summary of the machine's health and any recommendations "
            "in Myanmar language (Burmese)."
        )
        try:
            text = self._generate([{"text": prompt}])
        except AdviceError as exc:
            self._logger.warning("daily report failed machine=%s: %s", machine.id, exc)
            return REPORT_UNAVAILABLE_MESSAGE
        return text or "No report generated."

    def _api_key(self) -> str:
        return (self._api_key_provider() or "").strip()

    def _generate(
        self,
        parts: list[dict[str, Any]],
        *,
        generation_config: dict[str, Any] | None = None,
    ) -> str:
        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        if generation_config is not None:
            body["generationConfig"] = generation_config

        url = (
            f"{self._base_url}/models/{quote(self._model, safe='')}:generateContent?"
            f"{urlencode({'key': self._api_key()})}"
        )
        request = Request(
            url=url,
            method="POST",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                text = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise AdviceError(status_code=exc.code, detail=detail or str(exc.reason))
        except URLError as exc:
            raise AdviceError(status_code=503, detail=f"Connection failed: {exc.reason}")
        except TimeoutError as exc:
            raise AdviceError(status_code=504, detail=str(exc))

        try:
            payload = json.loads(text) if text else {}
        except json.JSONDecodeError as exc:
            raise AdviceError(status_code=502, detail=f"Invalid advice JSON response: {exc}") from exc
        return extract_text(payload)


def extract_text(payload: Any) -> str:
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(str(part.get("text") or "") for part in parts if isinstance(part, dict)).strip()


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text or "").strip()


def _base64_payload(photo_data: str | None) -> str:
    if not photo_data:
        return ""
    if "," in photo_data:
        return photo_data.split(",", 1)[1]
    return photo_data
