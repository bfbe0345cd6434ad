from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest import TestCase

from logbook.core.config import Settings
from logbook.db.session import build_engine, build_session_factory, init_db
from logbook.schemas.records import (
    GeneratorRunRecord,
    GeneratorServiceRecord,
    MaintenanceRecord,
    MeterRecord,
    TemperatureRecord,
)
from logbook.services.dashboards import filter_records, generator_service_status, machine_status
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.export import records_to_csv, records_to_text

_T0 = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


def _run(record_id: str, hours: float, *, day: int, generator_id: str = "GEN-A") -> GeneratorRunRecord:
    return GeneratorRunRecord(
        id=record_id,
        timestamp=_T0 + timedelta(days=day),
        generator_id=generator_id,
        run_hours=hours,
    )


def _service(record_id: str, *, day: int, run_hours: float | None = None, service_type: str = "Regular Service"):
    return GeneratorServiceRecord(
        id=record_id,
        timestamp=_T0 + timedelta(days=day),
        generator_id="GEN-A",
        service_type=service_type,
        run_hours=run_hours,
    )


class GeneratorServiceStatusTests(TestCase):
    def test_no_service_counts_from_zero(self) -> None:
        status = generator_service_status([_run("r1", 460, day=0)], "GEN-A")

        self.assertEqual(status.hours_since_service, 460)
        self.assertEqual(status.status, "WARNING")
        self.assertIsNone(status.last_service_timestamp)

    def test_service_with_reading_resets_counter(self) -> None:
        records = [
            _run("r1", 1000, day=0),
            _service("s1", day=1, run_hours=1010),
            _run("r2", 1520, day=5),
            _run("other", 9000, day=6, generator_id="GEN-B"),
        ]

        status = generator_service_status(records, "GEN-A")

        self.assertEqual(status.current_reading, 1520)
        self.assertEqual(status.hours_since_service, 510)
        self.assertEqual(status.status, "CRITICAL")

    def test_service_without_reading_uses_reading_before_it(self) -> None:
        records = [
            _run("r1", 2000, day=0),
            _service("s1", day=1),
            _service("repair", day=2, service_type="Repair"),
            _run("r2", 2100, day=3),
        ]

        status = generator_service_status(records, "GEN-A")

        self.assertEqual(status.hours_since_service, 100)
        self.assertEqual(status.status, "GOOD")

    def test_thresholds_are_configurable(self) -> None:
        status = generator_service_status(
            [_run("r1", 260, day=0)], "GEN-A", interval_hours=250, warning_hours=200
        )

        self.assertEqual(status.status, "CRITICAL")


class MachineStatusAndFilterTests(TestCase):
    def setUp(self) -> None:
        self.records = [
            TemperatureRecord(id="t1", timestamp=_T0, machine_id="cf-01", current_temp=-18, setpoint_temp=-18),
            TemperatureRecord(
                id="t2", timestamp=_T0, machine_id="ch-02", current_temp=9, setpoint_temp=4, is_anomaly=True
            ),
            MaintenanceRecord(
                id="mx1", timestamp=_T0, machine_id="cf-03", issue_description="Door seal torn", severity="LOW"
            ),
            MeterRecord(id="mr1", timestamp=_T0, meter_id="m-01", value=4521),
        ]

    def test_machine_status(self) -> None:
        self.assertEqual(machine_status(self.records, "cf-01").status, "GOOD")
        self.assertEqual(machine_status(self.records, "ch-02").status, "ISSUE")
        self.assertEqual(machine_status(self.records, "cf-03").status, "ISSUE")
        self.assertEqual(machine_status(self.records, "unused").record_count, 0)

    def test_filter_by_kind_entity_and_query(self) -> None:
        self.assertEqual([r.id for r in filter_records(self.records, kind="machine")], ["t1", "t2", "mx1"])
        self.assertEqual([r.id for r in filter_records(self.records, kind="METER_READING")], ["mr1"])
        self.assertEqual([r.id for r in filter_records(self.records, entity_id="ch-02")], ["t2"])
        self.assertEqual([r.id for r in filter_records(self.records, query="seal")], ["mx1"])
        self.assertEqual(len(filter_records(self.records, query="2026-10-01")), 4)


class ExportTests(TestCase):
    def setUp(self) -> None:
        engine = build_engine("sqlite://")
        init_db(engine)
        self.catalog = EntityCatalog(settings=Settings(), session_factory=build_session_factory(engine))

    def test_csv_quotes_every_cell(self) -> None:
        records = [
            MeterRecord(id="mr1", timestamp=_T0, meter_id="m-01", value=4521),
            _run("r1", 12.5, day=0),
            _service("s1", day=0),
            TemperatureRecord(id="t1", timestamp=_T0, machine_id="cf-01", current_temp=-18, setpoint_temp=-18),
        ]

        lines = records_to_csv(records, catalog=self.catalog, tz_name="UTC").split("\n")

        self.assertEqual(lines[0], '"ID","Type","Name/Machine","Date","Value/Issue","Details"')
        self.assertEqual(lines[1], '"mr1","METER_READING","Main Meter","10/1/2026, 8:00:00 AM","4521",""')
        self.assertEqual(lines[2], '"r1","GENERATOR_RUN","GEN-A","10/1/2026, 8:00:00 AM","12.5 hrs",""')
        self.assertEqual(lines[3], '"s1","GENERATOR_SERVICE","GEN-A","10/1/2026, 8:00:00 AM","Service","Regular Service"')
        self.assertEqual(lines[4], '"t1","TEMPERATURE","Chest Freezer 01","10/1/2026, 8:00:00 AM","TEMPERATURE",""')

    def test_text_lines(self) -> None:
        records = [
            TemperatureRecord(
                id="t1", timestamp=_T0, machine_id="cf-01", current_temp=-15, setpoint_temp=-18, notes="ok"
            ),
            MaintenanceRecord(
                id="mx1",
                timestamp=_T0,
                machine_id="cf-01",
                issue_description="Fan noise",
                severity="MEDIUM",
                action_taken="Cleaned",
            ),
        ]

        text = records_to_text(records, tz_name="UTC")

        self.assertEqual(
            text.split("\n"),
            [
                "10/1/2026, 8:00:00 AM - -15°C (Set: -18) - ok",
                "10/1/2026, 8:00:00 AM - ISSUE: Fan noise [MEDIUM] - Cleaned",
            ],
        )
