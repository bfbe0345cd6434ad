from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from logbook.schemas.entities import GeneratorServiceStatus, MachineStatus
from logbook.schemas.records import (
    GENERATOR_RECORD_TYPES,
    MACHINE_RECORD_TYPES,
    METER_RECORD_TYPES,
    GeneratorRunRecord,
    GeneratorServiceRecord,
    LogRecord,
    MaintenanceRecord,
    TemperatureRecord,
)

REGULAR_SERVICE = "Regular Service"
DEFAULT_SERVICE_INTERVAL_HOURS = 500.0
DEFAULT_SERVICE_WARNING_HOURS = 450.0

RECORD_KIND_TYPES: dict[str, frozenset[str]] = {
    "machine": MACHINE_RECORD_TYPES,
    "meter": METER_RECORD_TYPES,
    "generator": GENERATOR_RECORD_TYPES,
}


def generator_service_status(
    records: Iterable[LogRecord],
    generator_id: str,
    *,
    interval_hours: float = DEFAULT_SERVICE_INTERVAL_HOURS,
    warning_hours: float = DEFAULT_SERVICE_WARNING_HOURS,
) -> GeneratorServiceStatus:
    """Hours since the last regular service, measured against the latest run-hour reading."""

    readings: list[tuple[datetime, float]] = []
    services: list[GeneratorServiceRecord] = []
    for record in records:
        if isinstance(record, GeneratorRunRecord) and record.generator_id == generator_id:
            readings.append((record.timestamp, record.run_hours))
        elif isinstance(record, GeneratorServiceRecord) and record.generator_id == generator_id:
            if record.run_hours is not None:
                readings.append((record.timestamp, record.run_hours))
            if record.service_type == REGULAR_SERVICE:
                services.append(record)

    readings.sort(key=lambda item: item[0], reverse=True)
    services.sort(key=lambda item: item.timestamp, reverse=True)
    current_reading = readings[0][1] if readings else 0.0

    hours_since = current_reading
    last_service = services[0] if services else None
    if last_service is not None:
        if last_service.run_hours is not None:
            reading_at_service = last_service.run_hours
        else:
            reading_at_service = next(
                (hours for timestamp, hours in readings if timestamp <= last_service.timestamp),
                0.0,
            )
        hours_since = max(0.0, current_reading - reading_at_service)

    status = "GOOD"
    if hours_since >= interval_hours:
        status = "CRITICAL"
    elif hours_since >= warning_hours:
        status = "WARNING"

    return GeneratorServiceStatus(
        generator_id=generator_id,
        hours_since_service=hours_since,
        status=status,
        current_reading=current_reading,
        last_service_timestamp=last_service.timestamp.isoformat() if last_service else None,
    )


def machine_status(records: Iterable[LogRecord], machine_id: str) -> MachineStatus:
    machine_records = [
        record
        for record in records
        if isinstance(record, (TemperatureRecord, MaintenanceRecord)) and record.machine_id == machine_id
    ]
    has_issue = any(
        isinstance(record, MaintenanceRecord)
        or (isinstance(record, TemperatureRecord) and bool(record.is_anomaly))
        for record in machine_records
    )
    return MachineStatus(
        machine_id=machine_id,
        status="ISSUE" if has_issue else "GOOD",
        record_count=len(machine_records),
    )


def filter_records(
    records: Sequence[LogRecord],
    *,
    kind: str | None = None,
    entity_id: str | None = None,
    query: str | None = None,
) -> list[LogRecord]:
    if kind:
        key = kind.strip()
        allowed = RECORD_KIND_TYPES.get(key.lower(), frozenset({key.upper()}))
        records = [record for record in records if record.record_type in allowed]
    if entity_id:
        records = [record for record in records if record.entity_id == entity_id]
    if query:
        needle = query.strip().lower()
        records = [record for record in records if needle in _search_text(record)]
    return list(records)


def _search_text(record: LogRecord) -> str:
    values = [record.timestamp.date().isoformat(), record.entity_id, record.recorded_by or ""]
    for value in record.model_dump(exclude={"photo_data", "timestamp", "id"}).values():
        if isinstance(value, str):
            values.append(value)
    return " ".join(values).lower()
