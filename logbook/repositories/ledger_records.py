from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from logbook.db.models import LedgerRecord
from logbook.schemas.records import LogRecord, entity_column_for, log_record_adapter

_COMMON_FIELDS: frozenset[str] = frozenset(
    {
        "id",
        "record_type",
        "timestamp",
        "machine_id",
        "meter_id",
        "generator_id",
        "recorded_by",
        "synced_to_sheet",
    }
)


def list_ledger_records(db: Session) -> list[LedgerRecord]:
    return list(
        db.scalars(select(LedgerRecord).order_by(LedgerRecord.position.desc(), LedgerRecord.id))
    )


def get_max_position(db: Session) -> int:
    value = db.scalar(select(func.max(LedgerRecord.position)))
    return int(value) if value is not None else 0


def insert_ledger_record(db: Session, record: LogRecord) -> LedgerRecord:
    row = record_to_row(record, position=get_max_position(db) + 1)
    db.add(row)
    db.commit()
    return row


def mark_ledger_records_synced(db: Session, record_ids: Iterable[str]) -> int:
    ids = sorted(set(record_ids))
    if not ids:
        return 0
    result = db.execute(
        update(LedgerRecord)
        .where(LedgerRecord.id.in_(ids))
        .values(synced_to_sheet=True)
    )
    db.commit()
    return int(result.rowcount or 0)


def reset_ledger_sync_flags(db: Session) -> int:
    result = db.execute(update(LedgerRecord).values(synced_to_sheet=False))
    db.commit()
    return int(result.rowcount or 0)


def delete_ledger_record(db: Session, record_id: str) -> bool:
    result = db.execute(delete(LedgerRecord).where(LedgerRecord.id == record_id))
    db.commit()
    return bool(result.rowcount)


def delete_all_ledger_records(db: Session) -> int:
    result = db.execute(delete(LedgerRecord))
    db.commit()
    return int(result.rowcount or 0)


def merge_ledger_records(
    db: Session,
    *,
    new_records: Sequence[LogRecord],
    ordered_ids: Sequence[str],
) -> None:
    """Insert pulled records and rewrite positions so storage order matches ``ordered_ids``."""

    existing_ids = set(db.scalars(select(LedgerRecord.id)))
    for record in new_records:
        if record.id in existing_ids:
            continue
        db.add(record_to_row(record, position=0))
        existing_ids.add(record.id)
    db.flush()

    total = len(ordered_ids)
    for index, record_id in enumerate(ordered_ids):
        db.execute(
            update(LedgerRecord)
            .where(LedgerRecord.id == record_id)
            .values(position=total - index)
        )
    db.commit()


def record_to_row(record: LogRecord, *, position: int) -> LedgerRecord:
    data = record.model_dump(mode="json")
    payload = {key: value for key, value in data.items() if key not in _COMMON_FIELDS}
    entity_column = entity_column_for(record.record_type)
    references: dict[str, str | None] = {
        "machine_id": None,
        "meter_id": None,
        "generator_id": None,
    }
    references[entity_column] = getattr(record, entity_column)
    return LedgerRecord(
        id=record.id,
        record_type=record.record_type,
        position=position,
        timestamp=_to_utc(record.timestamp),
        recorded_by=record.recorded_by,
        synced_to_sheet=record.synced_to_sheet,
        payload_json=payload,
        **references,
    )


def row_to_record(row: LedgerRecord) -> LogRecord:
    data: dict[str, Any] = dict(row.payload_json or {})
    data.update(
        {
            "id": row.id,
            "record_type": row.record_type,
            "timestamp": _to_utc(row.timestamp),
            "recorded_by": row.recorded_by,
            "synced_to_sheet": bool(row.synced_to_sheet),
        }
    )
    entity_column = entity_column_for(row.record_type)
    data[entity_column] = getattr(row, entity_column)
    return log_record_adapter.validate_python(data)


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
