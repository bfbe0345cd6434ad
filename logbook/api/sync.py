from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from logbook.dependencies import get_current_user, get_sync_orchestrator
from logbook.schemas.entities import PublicUser
from logbook.schemas.sync import SyncCycleResponse, SyncStatusResponse, SyncTriggerResponse
from logbook.services.sync_orchestrator import SyncInProgressError, SyncOrchestrator

router = APIRouter(prefix="/api", tags=["sync"])


@router.post(
    "/sync",
    response_model=SyncCycleResponse | SyncTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_sync(
    response: Response,
    wait: bool = Query(default=False),
    _: PublicUser = Depends(get_current_user),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> SyncCycleResponse | SyncTriggerResponse:
    if wait:
        report = orchestrator.perform_full_sync(trigger="manual")
        if report.status == "skipped":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Sync already in progress")
        response.status_code = status.HTTP_200_OK
        return SyncCycleResponse.model_validate(report.to_dict())

    try:
        orchestrator.request_full_sync(trigger="manual")
    except SyncInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return SyncTriggerResponse(accepted=True, trigger="manual")


@router.get("/sync/status", response_model=SyncStatusResponse)
def get_sync_status(orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator)) -> SyncStatusResponse:
    return SyncStatusResponse.model_validate(orchestrator.get_status_snapshot())
