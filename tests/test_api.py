from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest import TestCase

from fastapi import FastAPI
from fastapi.testclient import TestClient

from logbook.api.advice import router as advice_router
from logbook.api.auth import router as auth_router
from logbook.api.bridge import router as bridge_router
from logbook.api.entities import router as entities_router
from logbook.api.records import router as records_router
from logbook.api.sync import router as sync_router
from logbook.core.config import Settings
from logbook.db.session import build_engine, build_session_factory, init_db
from logbook.dependencies import get_sync_orchestrator
from logbook.schemas.entities import UserCreate
from logbook.schemas.records import GeneratorRunRecord
from logbook.services.advisor import AdviceService
from logbook.services.auth import UserDirectory
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.ledger import LocalLedger
from logbook.services.sheet_client import SheetBridgeError
from logbook.services.sync_orchestrator import SyncCycleReport, SyncOrchestrator


class _FakeBridge:
    configured = True

    def __init__(self) -> None:
        self.pushed: list[tuple[str, list[dict[str, Any]]]] = []
        self.config_writes: list[tuple[str, Any]] = []
        self.offline = False

    def _push(self, action: str, rows: list[dict[str, Any]]) -> dict[str, Any]:
        if self.offline:
            raise SheetBridgeError(status_code=503, detail="Connection failed")
        self.pushed.append((action, rows))
        return {"success": True}

    def sync_machine_logs(self, rows):
        return self._push("SYNC_LOGS", rows)

    def sync_meter_logs(self, rows):
        return self._push("SYNC_METER_LOGS", rows)

    def sync_generator_logs(self, rows):
        return self._push("SYNC_GEN_LOGS", rows)

    def get_machine_logs(self):
        return []

    def get_meter_logs(self):
        return []

    def get_generator_logs(self):
        return []

    def get_config(self):
        return {}

    def get_machines(self):
        return []

    def get_meters(self):
        return []

    def get_generators(self):
        return []

    def get_users(self):
        return None

    def add_user(self, user):
        return None

    def delete_user(self, username):
        return None

    def set_config(self, *, key, value):
        self.config_writes.append((key, value))


def _build_app() -> tuple[FastAPI, _FakeBridge]:
    settings = Settings(
        sync_on_startup=False,
        sync_on_login=False,
        display_timezone="UTC",
        gemini_api_key="",
    )
    engine = build_engine("sqlite://")
    init_db(engine)
    factory = build_session_factory(engine)
    bridge = _FakeBridge()
    catalog = EntityCatalog(settings=settings, session_factory=factory)
    catalog.initialize_defaults()
    ledger = LocalLedger(session_factory=factory)
    users = UserDirectory(settings=settings, session_factory=factory, sheet_client=bridge)
    orchestrator = SyncOrchestrator(
        settings=settings,
        ledger=ledger,
        catalog=catalog,
        sheet_client=bridge,
        users=users,
    )

    app = FastAPI()
    for router in (auth_router, records_router, sync_router, entities_router, bridge_router, advice_router):
        app.include_router(router)
    app.state.settings = settings
    app.state.entity_catalog = catalog
    app.state.sheet_client = bridge
    app.state.ledger = ledger
    app.state.user_directory = users
    app.state.sync_orchestrator = orchestrator
    app.state.advice_service = AdviceService(settings=settings, api_key_provider=catalog.get_api_key)
    return app, bridge


class RecordsApiTests(TestCase):
    def setUp(self) -> None:
        self.app, self.bridge = _build_app()
        self.client = TestClient(self.app)

    def _login(self, username: str = "admin", password: str = "admin") -> None:
        response = self.client.post("/api/auth/login", json={"username": username, "password": password})
        self.assertEqual(response.status_code, 200)

    def test_create_requires_login(self) -> None:
        response = self.client.post(
            "/api/records",
            json={"record_type": "METER_READING", "meter_id": "m-01", "value": 12},
        )

        self.assertEqual(response.status_code, 401)

    def test_create_temperature_pushes_immediately(self) -> None:
        self._login()

        response = self.client.post(
            "/api/records",
            json={"record_type": "TEMPERATURE", "machine_id": "cf-01", "current_temp": -15, "setpoint_temp": -18},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["synced_to_sheet"])
        self.assertEqual(body["recorded_by"], "System Admin")
        action, rows = self.bridge.pushed[-1]
        self.assertEqual(action, "SYNC_LOGS")
        self.assertEqual(rows[0]["machine"], "Chest Freezer 01")

        listing = self.client.get("/api/records").json()
        self.assertEqual((listing["total"], listing["pending"]), (1, 0))

    def test_offline_create_stays_pending(self) -> None:
        self._login()
        self.bridge.offline = True

        response = self.client.post(
            "/api/records",
            json={"record_type": "GENERATOR_RUN", "generator_id": "KMD", "run_hours": 1200},
        )

        self.assertEqual(response.status_code, 201)
        self.assertFalse(response.json()["synced_to_sheet"])
        self.assertEqual(self.client.get("/api/records?kind=generator").json()["pending"], 1)

    def test_invalid_body_is_unprocessable(self) -> None:
        self._login()

        response = self.client.post(
            "/api/records",
            json={"record_type": "MAINTENANCE", "machine_id": "cf-01", "severity": "URGENT"},
        )

        self.assertEqual(response.status_code, 422)

    def test_delete_is_admin_only(self) -> None:
        users: UserDirectory = self.app.state.user_directory
        users.add_user(UserCreate(username="kyaw", password="pw", name="Kyaw"))
        self._login("kyaw", "pw")
        created = self.client.post(
            "/api/records",
            json={"record_type": "METER_READING", "meter_id": "m-01", "value": 12},
        ).json()

        denied = self.client.delete(f"/api/records/{created['id']}")
        self.assertEqual(denied.status_code, 403)

        self._login()
        self.assertEqual(self.client.delete(f"/api/records/{created['id']}").status_code, 204)
        self.assertEqual(self.client.delete(f"/api/records/{created['id']}").status_code, 404)

    def test_reset_sync_then_export(self) -> None:
        self._login()
        self.client.post(
            "/api/records",
            json={"record_type": "METER_READING", "meter_id": "m-01", "value": 12},
        )

        reset = self.client.post("/api/records/reset-sync")
        csv_response = self.client.get("/api/records/export.csv")

        self.assertEqual(reset.status_code, 200)
        self.assertEqual(reset.json()["pending"], 1)
        self.assertEqual(csv_response.status_code, 200)
        self.assertTrue(csv_response.text.startswith('"ID","Type","Name/Machine"'))
        self.assertIn('"Main Meter"', csv_response.text)


class SyncAndCatalogApiTests(TestCase):
    def setUp(self) -> None:
        self.app, self.bridge = _build_app()
        self.client = TestClient(self.app)
        self.client.post("/api/auth/login", json={"username": "admin", "password": "admin"})

    def tearDown(self) -> None:
        self.app.dependency_overrides.clear()

    def test_wait_sync_returns_cycle_report(self) -> None:
        response = self.client.post("/api/sync?wait=true")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        status = self.client.get("/api/sync/status").json()
        self.assertEqual(status["phase"], "IDLE")
        self.assertEqual(status["last_report"]["trigger"], "manual")

    def test_sync_in_flight_is_conflict(self) -> None:
        class _BusyOrchestrator:
            def perform_full_sync(self, trigger):
                return SyncCycleReport(trigger=trigger, status="skipped")

        self.app.dependency_overrides[get_sync_orchestrator] = lambda: _BusyOrchestrator()

        response = self.client.post("/api/sync?wait=true")

        self.assertEqual(response.status_code, 409)

    def test_catalog_and_dashboards(self) -> None:
        machines = self.client.get("/api/machines").json()
        generators = self.client.get("/api/generators").json()

        self.assertEqual(machines[0]["id"], "cf-01")
        self.assertEqual(len(generators), 18)
        self.assertEqual(self.client.get("/api/machines/cf-01/status").json()["status"], "GOOD")
        self.assertEqual(self.client.get("/api/machines/nope/status").status_code, 404)
        generator_status = self.client.get("/api/generators/KMD/status").json()
        self.assertEqual(generator_status["status"], "GOOD")

    def test_generator_status_for_pulled_name_only_generator(self) -> None:
        ledger: LocalLedger = self.app.state.ledger
        ledger.append(
            GeneratorRunRecord(
                id="restored-gen",
                timestamp=datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc),
                generator_id="Old Gen",
                run_hours=480,
            )
        )

        response = self.client.get("/api/generators/Old%20Gen/status")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "WARNING")
        self.assertEqual(self.client.get("/api/generators/Ghost/status").status_code, 404)

    def test_bridge_settings_and_api_key_upload(self) -> None:
        updated = self.client.put("/api/bridge", json={"sheet_url": "https://bridge.example/exec"})
        key = self.client.put("/api/bridge/api-key", json={"api_key": "key-abcdefghijk"})

        self.assertEqual(updated.json()["sheet_url"], "https://bridge.example/exec")
        self.assertTrue(key.json()["api_key_configured"])
        self.assertEqual(self.bridge.config_writes, [("GEMINI_API_KEY", "key-abcdefghijk")])

    def test_user_management(self) -> None:
        created = self.client.post("/api/users", json={"username": "mya", "password": "pw", "name": "Mya"})
        duplicate = self.client.post("/api/users", json={"username": "MYA", "password": "pw", "name": "Mya"})
        protected = self.client.delete("/api/users/admin")

        self.assertEqual(created.status_code, 201)
        self.assertNotIn("password", created.json())
        self.assertEqual(duplicate.status_code, 409)
        self.assertEqual(protected.status_code, 403)
        self.assertEqual(self.client.delete("/api/users/mya").status_code, 204)

    def test_advice_without_key_degrades(self) -> None:
        response = self.client.post(
            "/api/advice/anomaly", json={"current_temp": -2, "setpoint": -18, "machine_type": "FREEZER"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"is_anomaly": False, "message": ""})
