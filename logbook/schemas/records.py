from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

RecordType = Literal[
    "TEMPERATURE",
    "MAINTENANCE",
    "METER_READING",
    "GENERATOR_RUN",
    "GENERATOR_SERVICE",
]
Severity = Literal["LOW", "MEDIUM", "CRITICAL"]

MACHINE_RECORD_TYPES: frozenset[str] = frozenset({"TEMPERATURE", "MAINTENANCE"})
METER_RECORD_TYPES: frozenset[str] = frozenset({"METER_READING"})
GENERATOR_RECORD_TYPES: frozenset[str] = frozenset({"GENERATOR_RUN", "GENERATOR_SERVICE"})


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _RecordBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=128)
    timestamp: datetime
    recorded_by: str | None = None
    synced_to_sheet: bool = False

    @field_validator("timestamp")
    @classmethod
    def _timestamp_is_aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)


class TemperatureRecord(_RecordBase):
    record_type: Literal["TEMPERATURE"] = "TEMPERATURE"
    machine_id: str = Field(min_length=1)
    current_temp: float
    setpoint_temp: float
    notes: str | None = None
    is_anomaly: bool | None = None

    @property
    def entity_id(self) -> str:
        return self.machine_id


class MaintenanceRecord(_RecordBase):
    record_type: Literal["MAINTENANCE"] = "MAINTENANCE"
    machine_id: str = Field(min_length=1)
    issue_description: str
    severity: Severity
    action_taken: str | None = None
    ai_suggested_fix: str | None = None
    photo_data: str | None = None

    @property
    def entity_id(self) -> str:
        return self.machine_id


class MeterRecord(_RecordBase):
    record_type: Literal["METER_READING"] = "METER_READING"
    meter_id: str = Field(min_length=1)
    value: float
    photo_data: str | None = None

    @property
    def entity_id(self) -> str:
        return self.meter_id


class GeneratorRunRecord(_RecordBase):
    record_type: Literal["GENERATOR_RUN"] = "GENERATOR_RUN"
    generator_id: str = Field(min_length=1)
    run_hours: float
    notes: str | None = None

    @property
    def entity_id(self) -> str:
        return self.generator_id


class GeneratorServiceRecord(_RecordBase):
    record_type: Literal["GENERATOR_SERVICE"] = "GENERATOR_SERVICE"
    generator_id: str = Field(min_length=1)
    service_type: str
    notes: str | None = None
    parts_replaced: str | None = None
    next_service_due: str | None = None
    run_hours: float | None = None
    ai_advice: str | None = None
    photo_data: str | None = None

    @property
    def entity_id(self) -> str:
        return self.generator_id


LogRecord = Annotated[
    Union[
        TemperatureRecord,
        MaintenanceRecord,
        MeterRecord,
        GeneratorRunRecord,
        GeneratorServiceRecord,
    ],
    Field(discriminator="record_type"),
]

log_record_adapter: TypeAdapter[LogRecord] = TypeAdapter(LogRecord)
log_record_list_adapter: TypeAdapter[list[LogRecord]] = TypeAdapter(list[LogRecord])


class _RecordCreateBase(BaseModel):
    timestamp: datetime | None = None


class TemperatureCreate(_RecordCreateBase):
    record_type: Literal["TEMPERATURE"]
    machine_id: str = Field(min_length=1, max_length=128)
    current_temp: float
    setpoint_temp: float
    notes: str | None = None
    is_anomaly: bool | None = None

    @field_validator("notes", mode="before")
    @classmethod
    def _normalize_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class MaintenanceCreate(_RecordCreateBase):
    record_type: Literal["MAINTENANCE"]
    machine_id: str = Field(min_length=1, max_length=128)
    issue_description: str = Field(min_length=1)
    severity: Severity = "LOW"
    action_taken: str | None = None
    ai_suggested_fix: str | None = None
    photo_data: str | None = None

    @field_validator("action_taken", "ai_suggested_fix", "photo_data", mode="before")
    @classmethod
    def _normalize_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class MeterCreate(_RecordCreateBase):
    record_type: Literal["METER_READING"]
    meter_id: str = Field(min_length=1, max_length=128)
    value: float
    photo_data: str | None = None


class GeneratorRunCreate(_RecordCreateBase):
    record_type: Literal["GENERATOR_RUN"]
    generator_id: str = Field(min_length=1, max_length=128)
    run_hours: float = Field(ge=0.0)
    notes: str | None = None

    @field_validator("notes", mode="before")
    @classmethod
    def _normalize_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class GeneratorServiceCreate(_RecordCreateBase):
    record_type: Literal["GENERATOR_SERVICE"]
    generator_id: str = Field(min_length=1, max_length=128)
    service_type: str = Field(min_length=1)
    notes: str | None = None
    parts_replaced: str | None = None
    next_service_due: str | None = None
    run_hours: float | None = Field(default=None, ge=0.0)
    ai_advice: str | None = None
    photo_data: str | None = None

    @field_validator(
        "notes",
        "parts_replaced",
        "next_service_due",
        "ai_advice",
        "photo_data",
        mode="before",
    )
    @classmethod
    def _normalize_text(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


RecordCreate = Annotated[
    Union[
        TemperatureCreate,
        MaintenanceCreate,
        MeterCreate,
        GeneratorRunCreate,
        GeneratorServiceCreate,
    ],
    Field(discriminator="record_type"),
]


def build_record(
    payload: BaseModel,
    *,
    record_id: str,
    recorded_by: str | None,
    now: datetime | None = None,
) -> LogRecord:
    data = payload.model_dump()
    timestamp = data.pop("timestamp", None) or now or datetime.now(timezone.utc)
    data.update(
        {
            "id": record_id,
            "timestamp": timestamp,
            "recorded_by": recorded_by,
            "synced_to_sheet": False,
        }
    )
    return log_record_adapter.validate_python(data)


def entity_column_for(record_type: str) -> str:
    if record_type in MACHINE_RECORD_TYPES:
        return "machine_id"
    if record_type in METER_RECORD_TYPES:
        return "meter_id"
    if record_type in GENERATOR_RECORD_TYPES:
        return "generator_id"
    raise ValueError(f"Unknown record_type '{record_type}'")


class RecordListResponse(BaseModel):
    total: int
    pending: int
    records: list[LogRecord]
