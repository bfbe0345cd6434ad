"""Translation between ledger records and the spreadsheet bridge row shapes.

Outbound rows carry display names, a localized date string and photos without
their data-URI prefix. Inbound rows are untyped string-keyed mappings; they are
checked against a JSON schema and coerced into the typed record union, and any
row that cannot produce a complete record is rejected with ``RemoteRowError``.
"""

from __future__ import annotations

import json
import math
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from jsonschema import Draft202012Validator
from pydantic import ValidationError

from logbook.schemas.records import (
    GeneratorRunRecord,
    GeneratorServiceRecord,
    LogRecord,
    MaintenanceRecord,
    MeterRecord,
    TemperatureRecord,
)

MACHINE_KIND = "machine"
METER_KIND = "meter"
GENERATOR_KIND = "generator"

_SEVERITIES: frozenset[str] = frozenset({"LOW", "MEDIUM", "CRITICAL"})
_LOCAL_DATE_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y, %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y, %H:%M:%S",
)

_SCALAR = {"type": ["string", "number", "boolean", "null"]}
_REQUIRED_SCALAR = {"type": ["string", "number"]}

MACHINE_LOG_ROW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["type", "value"],
    "properties": {
        "id": _SCALAR,
        "machineId": _SCALAR,
        "machineName": _SCALAR,
        "dateStr": _SCALAR,
        "isoTimestamp": _SCALAR,
        "recordedBy": _SCALAR,
        "type": {"type": "string", "minLength": 1},
        "value": _REQUIRED_SCALAR,
        "target": _SCALAR,
        "notes": _SCALAR,
        "ai": _SCALAR,
    },
}

METER_LOG_ROW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["value"],
    "properties": {
        "id": _SCALAR,
        "meterId": _SCALAR,
        "meterName": _SCALAR,
        "dateStr": _SCALAR,
        "isoTimestamp": _SCALAR,
        "recordedBy": _SCALAR,
        "value": _REQUIRED_SCALAR,
    },
}

GENERATOR_LOG_ROW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["type"],
    "properties": {
        "id": _SCALAR,
        "genId": _SCALAR,
        "genName": _SCALAR,
        "dateStr": _SCALAR,
        "isoTimestamp": _SCALAR,
        "recordedBy": _SCALAR,
        "type": {"type": "string", "minLength": 1},
        "runHours": _SCALAR,
        "notes": _SCALAR,
        "parts": _SCALAR,
        "ai": _SCALAR,
    },
}

_VALIDATORS: dict[str, Draft202012Validator] = {
    MACHINE_KIND: Draft202012Validator(MACHINE_LOG_ROW_SCHEMA),
    METER_KIND: Draft202012Validator(METER_LOG_ROW_SCHEMA),
    GENERATOR_KIND: Draft202012Validator(GENERATOR_LOG_ROW_SCHEMA),
}


class RemoteRowError(ValueError):
    def __init__(self, reason: str, *, row_id: str | None = None):
        self.reason = reason
        self.row_id = row_id
        super().__init__(reason)


EntityLookup = Callable[[str], str]


# --- outbound -------------------------------------------------------------


def strip_data_uri(photo_data: str | None) -> str:
    if not photo_data:
        return ""
    if "," in photo_data:
        return photo_data.split(",", 1)[1]
    return photo_data


def format_local_datetime(value: datetime, tz_name: str) -> str:
    local = _to_utc(value).astimezone(_zone(tz_name))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def build_machine_rows(
    records: Sequence[TemperatureRecord | MaintenanceRecord],
    *,
    names: Mapping[str, str],
    tz_name: str,
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for record in records:
        base = {
            "machine": names.get(record.machine_id) or record.machine_id,
            "date": format_local_datetime(record.timestamp, tz_name),
            "recordedBy": record.recorded_by or "Unknown",
            "id": record.id,
            "machineId": record.machine_id,
            "timestamp": _iso(record.timestamp),
        }
        if isinstance(record, TemperatureRecord):
            rows.append(
                {
                    **base,
                    "type": "Temperature",
                    "value": record.current_temp,
                    "target": record.setpoint_temp,
                    "notes": record.notes or "",
                    "ai": "Anomaly" if record.is_anomaly else "Normal",
                    "photo": "",
                }
            )
        else:
            rows.append(
                {
                    **base,
                    "type": "Maintenance",
                    "value": record.issue_description,
                    "target": record.severity,
                    "notes": record.action_taken or "",
                    "ai": record.ai_suggested_fix or "",
                    "photo": strip_data_uri(record.photo_data),
                }
            )
    return rows


def build_meter_rows(
    records: Sequence[MeterRecord],
    *,
    names: Mapping[str, str],
    tz_name: str,
) -> list[dict[str, Any]]:
    return [
        {
            "date": format_local_datetime(record.timestamp, tz_name),
            "meterName": names.get(record.meter_id) or record.meter_id,
            "value": record.value,
            "recordedBy": record.recorded_by or "Unknown",
            "photo": strip_data_uri(record.photo_data),
            "id": record.id,
            "meterId": record.meter_id,
            "timestamp": _iso(record.timestamp),
        }
        for record in records
    ]


def build_generator_rows(
    records: Sequence[GeneratorRunRecord | GeneratorServiceRecord],
    *,
    names: Mapping[str, str],
    tz_name: str,
) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for record in records:
        base = {
            "date": format_local_datetime(record.timestamp, tz_name),
            "recordedBy": record.recorded_by or "Unknown",
            "id": record.id,
            "timestamp": _iso(record.timestamp),
            "genId": record.generator_id,
            "genName": names.get(record.generator_id) or record.generator_id or "Unknown Generator",
        }
        if isinstance(record, GeneratorRunRecord):
            rows.append(
                {
                    **base,
                    "type": "RUN_HOURS",
                    "runHours": _finite_or(record.run_hours, 0),
                    "notes": record.notes or "",
                    "parts": "",
                    "photo": "",
                    "ai": "",
                }
            )
        else:
            run_hours: float | str = ""
            if record.run_hours is not None:
                run_hours = _finite_or(record.run_hours, "")
            rows.append(
                {
                    **base,
                    "type": "SERVICE",
                    "runHours": run_hours,
                    "notes": record.service_type or "",
                    "parts": record.parts_replaced or "",
                    "photo": strip_data_uri(record.photo_data),
                    "ai": record.ai_advice or "",
                }
            )
    return rows


# --- inbound --------------------------------------------------------------


def resolve_entity_id(explicit_id: Any, name: Any, lookup: EntityLookup) -> str:
    """Explicit id, else case-insensitive name match, else the name itself."""

    resolved = _text(explicit_id)
    if resolved:
        return resolved
    display_name = _text(name)
    if display_name == "":
        return ""
    return lookup(display_name) or display_name


def parse_machine_row(row: Mapping[str, Any], *, lookup: EntityLookup, tz_name: str) -> LogRecord:
    record_id = _validate(MACHINE_KIND, row)
    machine_id = resolve_entity_id(row.get("machineId"), row.get("machineName"), lookup)
    if machine_id == "":
        raise RemoteRowError("no machine reference", row_id=record_id)
    common = _common_fields(row, record_id=record_id, tz_name=tz_name)

    row_type = _text(row.get("type"))
    if row_type.lower() == "temperature":
        return _build(
            TemperatureRecord,
            record_id,
            **common,
            machine_id=machine_id,
            current_temp=_required_float(row.get("value"), "value", record_id),
            setpoint_temp=_required_float(row.get("target"), "target", record_id),
            notes=_text(row.get("notes")) or None,
            is_anomaly="anomaly" in _text(row.get("ai")).lower(),
        )

    severity = _text(row.get("target")).upper()
    if severity not in _SEVERITIES:
        raise RemoteRowError(f"unknown severity '{severity}'", row_id=record_id)
    return _build(
        MaintenanceRecord,
        record_id,
        **common,
        machine_id=machine_id,
        issue_description=_text(row.get("value")),
        severity=severity,
        action_taken=_text(row.get("notes")) or None,
        ai_suggested_fix=_text(row.get("ai")) or None,
    )


def parse_meter_row(row: Mapping[str, Any], *, lookup: EntityLookup, tz_name: str) -> LogRecord:
    record_id = _validate(METER_KIND, row)
    meter_id = resolve_entity_id(row.get("meterId"), row.get("meterName"), lookup)
    if meter_id == "":
        raise RemoteRowError("no meter reference", row_id=record_id)
    return _build(
        MeterRecord,
        record_id,
        **_common_fields(row, record_id=record_id, tz_name=tz_name),
        meter_id=meter_id,
        value=_required_float(row.get("value"), "value", record_id),
    )


def parse_generator_row(row: Mapping[str, Any], *, lookup: EntityLookup, tz_name: str) -> LogRecord:
    record_id = _validate(GENERATOR_KIND, row)
    generator_id = resolve_entity_id(row.get("genId"), row.get("genName"), lookup)
    if generator_id == "":
        raise RemoteRowError("no generator reference", row_id=record_id)
    common = _common_fields(row, record_id=record_id, tz_name=tz_name)
    run_hours = _optional_float(row.get("runHours"))

    if _text(row.get("type")).upper() == "RUN_HOURS":
        if run_hours is None:
            raise RemoteRowError("runHours is missing or not numeric", row_id=record_id)
        return _build(
            GeneratorRunRecord,
            record_id,
            **common,
            generator_id=generator_id,
            run_hours=run_hours,
            notes=_text(row.get("notes")) or None,
        )

    return _build(
        GeneratorServiceRecord,
        record_id,
        **common,
        generator_id=generator_id,
        service_type=_text(row.get("notes")) or "Service",
        parts_replaced=_text(row.get("parts")) or None,
        run_hours=run_hours,
        ai_advice=_text(row.get("ai")) or None,
    )


ROW_PARSERS: dict[str, Callable[..., LogRecord]] = {
    MACHINE_KIND: parse_machine_row,
    METER_KIND: parse_meter_row,
    GENERATOR_KIND: parse_generator_row,
}


def derive_record_id(kind: str, row: Mapping[str, Any]) -> str:
    explicit = _text(row.get("id"))
    if explicit:
        return explicit
    fingerprint = json.dumps(row, sort_keys=True, default=str)
    return f"restored-{kind}-{uuid.uuid5(uuid.NAMESPACE_OID, fingerprint)}"


def parse_row_timestamp(row: Mapping[str, Any], tz_name: str) -> datetime | None:
    iso_value = _parse_iso(row.get("isoTimestamp"))
    if iso_value is not None:
        return iso_value
    raw = row.get("dateStr")
    iso_value = _parse_iso(raw)
    if iso_value is not None:
        return iso_value
    text = _text(raw)
    if text == "":
        return None
    for fmt in _LOCAL_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=_zone(tz_name)).astimezone(timezone.utc)
    return None


def _validate(kind: str, row: Mapping[str, Any]) -> str:
    record_id = derive_record_id(kind, row)
    errors = sorted(_VALIDATORS[kind].iter_errors(dict(row)), key=lambda item: list(item.path))
    if errors:
        first = errors[0]
        path = ".".join(str(part) for part in first.path) or "$"
        raise RemoteRowError(f"{path}: {first.message}", row_id=record_id)
    return record_id


def _common_fields(row: Mapping[str, Any], *, record_id: str, tz_name: str) -> dict[str, Any]:
    timestamp = parse_row_timestamp(row, tz_name)
    if timestamp is None:
        raise RemoteRowError("no parseable timestamp", row_id=record_id)
    return {
        "timestamp": timestamp,
        "recorded_by": _text(row.get("recordedBy")) or None,
        "synced_to_sheet": True,
    }


def _build(model: type[Any], record_id: str, **fields: Any) -> LogRecord:
    try:
        return model(id=record_id, **fields)
    except ValidationError as exc:
        raise RemoteRowError(f"invalid record: {exc.errors()[0].get('msg')}", row_id=record_id) from exc


def _required_float(value: Any, field_name: str, record_id: str) -> float:
    parsed = _optional_float(value)
    if parsed is None:
        raise RemoteRowError(f"{field_name} is not numeric", row_id=record_id)
    return parsed


def _optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() == "":
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return parsed


def _finite_or(value: float, fallback: Any) -> Any:
    return value if math.isfinite(value) else fallback


def _parse_iso(value: Any) -> datetime | None:
    text = _text(value)
    if text == "":
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _to_utc(parsed)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _zone(tz_name: str) -> ZoneInfo | timezone:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _iso(value: datetime) -> str:
    return _to_utc(value).isoformat().replace("+00:00", "Z")
