from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest import TestCase
from unittest.mock import MagicMock, patch
from urllib.error import URLError

from logbook.core.config import Settings
from logbook.schemas.entities import Machine
from logbook.schemas.records import TemperatureRecord
from logbook.services.advisor import (
    ADVICE_UNAVAILABLE_MESSAGE,
    MISSING_KEY_MESSAGE,
    AdviceService,
    strip_code_fences,
)


def _gemini_response(text: str) -> MagicMock:
    response = MagicMock()
    response.read.return_value = json.dumps(
        {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    ).encode("utf-8")
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


class AdviceServiceTests(TestCase):
    def setUp(self) -> None:
        self.api_key = "test-key"
        self.service = AdviceService(
            settings=Settings(gemini_base_url="https://gen.example/v1beta", gemini_model="gemini-2.5-flash"),
            api_key_provider=lambda: self.api_key,
        )

    def test_missing_key_short_circuits(self) -> None:
        self.api_key = ""
        with patch("logbook.services.advisor.urlopen") as mocked:
            self.assertEqual(self.service.analyze_maintenance_issue("Freezer", "Leak"), MISSING_KEY_MESSAGE)
            verdict = self.service.detect_anomaly(-2, -18, "FREEZER")

        mocked.assert_not_called()
        self.assertFalse(verdict.is_anomaly)

    def test_maintenance_request_includes_photo_and_language(self) -> None:
        with patch(
            "logbook.services.advisor.urlopen", return_value=_gemini_response("1. Unplug the unit.")
        ) as mocked:
            advice = self.service.analyze_maintenance_issue(
                "Chest Freezer 01",
                "Ice on coils",
                photo_data="data:image/jpeg;base64,QUJD",
                language="Myanmar",
            )

        self.assertEqual(advice, "1. Unplug the unit.")
        request = mocked.call_args.args[0]
        self.assertEqual(
            request.full_url,
            "https://gen.example/v1beta/models/gemini-2.5-flash:generateContent?key=test-key",
        )
        parts = json.loads(request.data.decode("utf-8"))["contents"][0]["parts"]
        self.assertIn("Myanmar", parts[0]["text"])
        self.assertEqual(parts[1]["inline_data"], {"mime_type": "image/jpeg", "data": "QUJD"})

    def test_transport_failure_degrades_to_message(self) -> None:
        with patch("logbook.services.advisor.urlopen", side_effect=URLError("offline")):
            advice = self.service.analyze_maintenance_issue("Freezer", "Leak")

        self.assertEqual(advice, ADVICE_UNAVAILABLE_MESSAGE)

    def test_anomaly_parses_fenced_json(self) -> None:
        fenced = '```json\n{"isAnomaly": true, "message": "Temperature far above setpoint"}\n```'
        with patch("logbook.services.advisor.urlopen", return_value=_gemini_response(fenced)) as mocked:
            verdict = self.service.detect_anomaly(-2, -18, "FREEZER")

        self.assertTrue(verdict.is_anomaly)
        self.assertEqual(verdict.message, "Temperature far above setpoint")
        body = json.loads(mocked.call_args.args[0].data.decode("utf-8"))
        self.assertEqual(body["generationConfig"]["responseMimeType"], "application/json")

    def test_anomaly_garbage_is_not_an_anomaly(self) -> None:
        with patch("logbook.services.advisor.urlopen", return_value=_gemini_response("not json")):
            verdict = self.service.detect_anomaly(-2, -18, "FREEZER")

        self.assertFalse(verdict.is_anomaly)
        self.assertEqual(verdict.message, "")

    def test_daily_report_sends_last_ten_machine_records(self) -> None:
        start = datetime(2026, 10, 1, tzinfo=timezone.utc)
        records = [
            TemperatureRecord(
                id=f"t{index}",
                timestamp=start + timedelta(hours=index),
                machine_id="cf-01" if index % 5 else "other",
                current_temp=-18 + index / 10,
                setpoint_temp=-18,
            )
            for index in range(20)
        ]
        machine = Machine(id="cf-01", name="Chest Freezer 01", type="FREEZER", default_setpoint=-18)

        with patch("logbook.services.advisor.urlopen", return_value=_gemini_response("Healthy.")) as mocked:
            report = self.service.generate_daily_report(records, machine)

        self.assertEqual(report, "Healthy.")
        prompt = json.loads(mocked.call_args.args[0].data.decode("utf-8"))["contents"][0]["parts"][0]["text"]
        logs = json.loads(prompt.split("Logs:\n", 1)[1].split("\n\n", 1)[0])
        self.assertEqual(len(logs), 10)
        self.assertEqual(logs[-1]["temp"], -18 + 19 / 10)

    def test_strip_code_fences(self) -> None:
        self.assertEqual(strip_code_fences("```json\n{}\n```"), "{}")
        self.assertEqual(strip_code_fences(""), "")
