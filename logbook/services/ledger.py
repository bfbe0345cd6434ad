from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from threading import Lock
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from logbook.repositories.ledger_records import (
    delete_all_ledger_records,
    delete_ledger_record,
    insert_ledger_record,
    list_ledger_records,
    mark_ledger_records_synced,
    merge_ledger_records,
    reset_ledger_sync_flags,
    row_to_record,
)
from logbook.schemas.records import LogRecord

_PERSIST_ERRORS: tuple[type[Exception], ...] = (SQLAlchemyError, TypeError, ValueError)


class LocalLedger:
    """On-device store of log records, newest-first by insertion.

    Every mutation is one read-modify-persist unit under ``_lock``. The
    in-memory collection is authoritative for the running process: when the
    database write fails the error is logged and the caller still receives the
    updated collection.
    """

    def __init__(self, *, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._logger = logging.getLogger("logbook.ledger")
        self._lock = Lock()
        self._records: list[LogRecord] = self._load()

    def list(self) -> list[LogRecord]:
        with self._lock:
            return list(self._records)

    def pending(self) -> list[LogRecord]:
        with self._lock:
            return [record for record in self._records if not record.synced_to_sheet]

    def get(self, record_id: str) -> LogRecord | None:
        with self._lock:
            for record in self._records:
                if record.id == record_id:
                    return record
        return None

    def append(self, record: LogRecord) -> list[LogRecord]:
        with self._lock:
            if any(existing.id == record.id for existing in self._records):
                self._logger.warning("append ignored duplicate record id=%s", record.id)
                return list(self._records)
            if record.synced_to_sheet:
                record = record.model_copy(update={"synced_to_sheet": False})
            self._records = [record, *self._records]
            self._persist("append", lambda db: insert_ledger_record(db, record))
            return list(self._records)

    def mark_synced(self, record_ids: Iterable[str]) -> list[LogRecord]:
        ids = set(record_ids)
        with self._lock:
            if not ids:
                return list(self._records)
            self._records = [
                record.model_copy(update={"synced_to_sheet": True})
                if record.id in ids and not record.synced_to_sheet
                else record
                for record in self._records
            ]
            self._persist("mark_synced", lambda db: mark_ledger_records_synced(db, ids))
            return list(self._records)

    def remove(self, record_id: str) -> list[LogRecord]:
        with self._lock:
            remaining = [record for record in self._records if record.id != record_id]
            if len(remaining) == len(self._records):
                return list(self._records)
            self._records = remaining
            self._persist("remove", lambda db: delete_ledger_record(db, record_id))
            return list(self._records)

    def reset_all_sync_flags(self) -> list[LogRecord]:
        with self._lock:
            self._records = [
                record.model_copy(update={"synced_to_sheet": False}) for record in self._records
            ]
            self._persist("reset_all_sync_flags", reset_ledger_sync_flags)
            return list(self._records)

    def merge_remote(self, records: Sequence[LogRecord]) -> tuple[list[LogRecord], int]:
        """Add records whose identity is not yet known, then order by timestamp descending.

        Returns the merged collection and the number of records actually added.
        """

        with self._lock:
            known_ids = {record.id for record in self._records}
            additions: list[LogRecord] = []
            for record in records:
                if record.id in known_ids:
                    continue
                known_ids.add(record.id)
                additions.append(record.model_copy(update={"synced_to_sheet": True}))

            if not additions:
                return list(self._records), 0

            merged = sorted(
                [*additions, *self._records],
                key=lambda item: item.timestamp,
                reverse=True,
            )
            self._records = merged
            ordered_ids = [record.id for record in merged]
            self._persist(
                "merge_remote",
                lambda db: merge_ledger_records(db, new_records=additions, ordered_ids=ordered_ids),
            )
            return list(self._records), len(additions)

    def clear(self) -> list[LogRecord]:
        with self._lock:
            self._records = []
            self._persist("clear", delete_all_ledger_records)
            return []

    def _load(self) -> list[LogRecord]:
        try:
            with self._session_factory() as db:
                rows = list_ledger_records(db)
        except SQLAlchemyError:
            self._logger.exception("ledger read failed, starting with an empty collection")
            return []

        records: list[LogRecord] = []
        for row in rows:
            try:
                records.append(row_to_record(row))
            except ValueError as exc:
                self._logger.warning("skipping unreadable ledger row id=%s error=%s", row.id, exc)
        return records

    def _persist(self, operation: str, write: Callable[[Session], Any]) -> bool:
        try:
            with self._session_factory() as db:
                try:
                    write(db)
                except _PERSIST_ERRORS:
                    db.rollback()
                    raise
        except _PERSIST_ERRORS:
            self._logger.exception(
                "ledger write failed operation=%s; keeping in-memory state only",
                operation,
            )
            return False
        return True
