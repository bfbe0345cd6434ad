from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from logbook.core.config import Settings
from logbook.dependencies import get_entity_catalog, get_ledger, get_settings_from_app
from logbook.schemas.entities import (
    Generator,
    GeneratorServiceStatus,
    Machine,
    MachineStatus,
    Meter,
)
from logbook.schemas.records import LogRecord
from logbook.services.dashboards import generator_service_status, machine_status
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.ledger import LocalLedger

router = APIRouter(prefix="/api", tags=["entities"])


@router.get("/machines", response_model=list[Machine])
def list_machines(catalog: EntityCatalog = Depends(get_entity_catalog)) -> list[Machine]:
    return catalog.get_machines()


@router.get("/meters", response_model=list[Meter])
def list_meters(catalog: EntityCatalog = Depends(get_entity_catalog)) -> list[Meter]:
    return catalog.get_meters()


@router.get("/generators", response_model=list[Generator])
def list_generators(catalog: EntityCatalog = Depends(get_entity_catalog)) -> list[Generator]:
    return catalog.get_generators()


@router.get("/machines/{machine_id}/status", response_model=MachineStatus)
def get_machine_status(
    machine_id: str,
    catalog: EntityCatalog = Depends(get_entity_catalog),
    ledger: LocalLedger = Depends(get_ledger),
) -> MachineStatus:
    records = ledger.list()
    if catalog.get_machine(machine_id) is None and not _has_records(records, "machine_id", machine_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Machine not found")
    return machine_status(records, machine_id)


@router.get("/generators/{generator_id}/status", response_model=GeneratorServiceStatus)
def get_generator_status(
    generator_id: str,
    catalog: EntityCatalog = Depends(get_entity_catalog),
    ledger: LocalLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings_from_app),
) -> GeneratorServiceStatus:
    records = ledger.list()
    # Pulled rows with an unknown genName keep that name as their id.
    known = any(item.id == generator_id for item in catalog.get_generators())
    if not known and not _has_records(records, "generator_id", generator_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generator not found")
    return generator_service_status(
        records,
        generator_id,
        interval_hours=settings.generator_service_interval_hours,
        warning_hours=settings.generator_service_warning_hours,
    )


def _has_records(records: list[LogRecord], field_name: str, entity_id: str) -> bool:
    return any(getattr(record, field_name, None) == entity_id for record in records)
