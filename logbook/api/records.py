from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status

from logbook.core.config import Settings
from logbook.dependencies import (
    get_current_user,
    get_entity_catalog,
    get_ledger,
    get_settings_from_app,
    get_sync_orchestrator,
    require_admin_user,
)
from logbook.schemas.entities import PublicUser
from logbook.schemas.records import LogRecord, RecordCreate, RecordListResponse, build_record
from logbook.services.dashboards import filter_records
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.export import records_to_csv, records_to_text
from logbook.services.ledger import LocalLedger
from logbook.services.sync_orchestrator import SyncOrchestrator

router = APIRouter(prefix="/api", tags=["records"])
logger = logging.getLogger("logbook.records_api")


@router.get("/records", response_model=RecordListResponse)
def list_records(
    kind: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    q: str | None = Query(default=None),
    ledger: LocalLedger = Depends(get_ledger),
) -> RecordListResponse:
    records = ledger.list()
    pending = sum(1 for record in records if not record.synced_to_sheet)
    filtered = filter_records(records, kind=kind, entity_id=entity_id, query=q)
    return RecordListResponse(total=len(records), pending=pending, records=filtered)


@router.post("/records", response_model=LogRecord, status_code=status.HTTP_201_CREATED)
def create_record(
    payload: RecordCreate = Body(...),
    user: PublicUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> LogRecord:
    record = build_record(payload, record_id=uuid4().hex, recorded_by=user.name)
    stored = orchestrator.record_and_push(record)
    logger.info(
        "record created id=%s type=%s synced=%s",
        stored.id,
        stored.record_type,
        stored.synced_to_sheet,
    )
    return stored


@router.post("/records/reset-sync", response_model=RecordListResponse)
def reset_sync_flags(
    _: PublicUser = Depends(require_admin_user),
    ledger: LocalLedger = Depends(get_ledger),
) -> RecordListResponse:
    records = ledger.reset_all_sync_flags()
    logger.info("sync flags reset count=%d", len(records))
    return RecordListResponse(total=len(records), pending=len(records), records=records)


@router.get("/records/export.csv")
def export_csv(
    kind: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    ledger: LocalLedger = Depends(get_ledger),
    catalog: EntityCatalog = Depends(get_entity_catalog),
    settings: Settings = Depends(get_settings_from_app),
) -> Response:
    records = filter_records(ledger.list(), kind=kind, entity_id=entity_id)
    content = records_to_csv(records, catalog=catalog, tz_name=settings.display_timezone)
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="logbook_export.csv"'},
    )


@router.get("/records/export.txt")
def export_text(
    kind: str | None = Query(default=None),
    entity_id: str | None = Query(default=None),
    ledger: LocalLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings_from_app),
) -> Response:
    records = filter_records(ledger.list(), kind=kind, entity_id=entity_id)
    return Response(
        content=records_to_text(records, tz_name=settings.display_timezone),
        media_type="text/plain; charset=utf-8",
    )


@router.delete("/records/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_record(
    record_id: str,
    _: PublicUser = Depends(require_admin_user),
    ledger: LocalLedger = Depends(get_ledger),
) -> Response:
    if ledger.get(record_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    ledger.remove(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
