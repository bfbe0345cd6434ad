from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from logbook.dependencies import get_advice_service, get_entity_catalog, get_ledger
from logbook.schemas.advice import (
    AdviceResponse,
    AnomalyRequest,
    AnomalyResponse,
    DailyReportRequest,
    MaintenanceAdviceRequest,
)
from logbook.services.advisor import AdviceService
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.ledger import LocalLedger

router = APIRouter(prefix="/api/advice", tags=["advice"])


@router.post("/maintenance", response_model=AdviceResponse)
def maintenance_advice(
    payload: MaintenanceAdviceRequest,
    advisor: AdviceService = Depends(get_advice_service),
) -> AdviceResponse:
    advice = advisor.analyze_maintenance_issue(
        payload.equipment_name,
        payload.issue_description,
        photo_data=payload.photo_data,
        language=payload.language,
        equipment_kind=payload.equipment_kind,
    )
    return AdviceResponse(advice=advice)


@router.post("/anomaly", response_model=AnomalyResponse)
def anomaly_check(
    payload: AnomalyRequest,
    advisor: AdviceService = Depends(get_advice_service),
) -> AnomalyResponse:
    verdict = advisor.detect_anomaly(payload.current_temp, payload.setpoint, payload.machine_type)
    return AnomalyResponse(is_anomaly=verdict.is_anomaly, message=verdict.message)


@router.post("/report", response_model=AdviceResponse)
def daily_report(
    payload: DailyReportRequest,
    advisor: AdviceService = Depends(get_advice_service),
    catalog: EntityCatalog = Depends(get_entity_catalog),
    ledger: LocalLedger = Depends(get_ledger),
) -> AdviceResponse:
    machine = catalog.get_machine(payload.machine_id)
    if machine is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Machine not found")
    # Ledger is newest-first; the report reads oldest-first.
    records = list(reversed(ledger.list()))
    return AdviceResponse(advice=advisor.generate_daily_report(records, machine))
