from __future__ import annotations

import csv
import io
from collections.abc import Sequence

from logbook.schemas.records import (
    GeneratorRunRecord,
    GeneratorServiceRecord,
    LogRecord,
    MaintenanceRecord,
    MeterRecord,
    TemperatureRecord,
)
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.remote_rows import format_local_datetime

CSV_HEADER = ("ID", "Type", "Name/Machine", "Date", "Value/Issue", "Details")


def records_to_csv(records: Sequence[LogRecord], *, catalog: EntityCatalog, tz_name: str = "UTC") -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for record in records:
        if isinstance(record, MeterRecord):
            name = catalog.meter_name(record.meter_id)
            value, details = _number(record.value), ""
        elif isinstance(record, GeneratorRunRecord):
            name = catalog.generator_name(record.generator_id)
            value, details = f"{_number(record.run_hours)} hrs", record.notes or ""
        elif isinstance(record, GeneratorServiceRecord):
            name = catalog.generator_name(record.generator_id)
            value, details = "Service", record.service_type
        else:
            name = catalog.machine_name(record.machine_id)
            value, details = record.record_type, ""
        writer.writerow(
            (
                record.id,
                record.record_type,
                name,
                format_local_datetime(record.timestamp, tz_name),
                value,
                details,
            )
        )
    return buffer.getvalue().rstrip("\n")


def records_to_text(records: Sequence[LogRecord], *, tz_name: str = "UTC") -> str:
    lines: list[str] = []
    for record in records:
        date = format_local_datetime(record.timestamp, tz_name)
        if isinstance(record, TemperatureRecord):
            lines.append(
                f"{date} - {_number(record.current_temp)}°C "
                f"(Set: {_number(record.setpoint_temp)}) - {record.notes or ''}"
            )
        elif isinstance(record, MaintenanceRecord):
            lines.append(
                f"{date} - ISSUE: {record.issue_description} [{record.severity}] - "
                f"{record.action_taken or ''}"
            )
        else:
            lines.append(f"{date} - {record.record_type}")
    return "\n".join(lines)


def _number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return str(value)
