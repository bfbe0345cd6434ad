from typing import TYPE_CHECKING

from fastapi import Depends, HTTPException, Request

from logbook.core.config import Settings
from logbook.schemas.entities import PublicUser
from logbook.services.auth import PermissionDeniedError

if TYPE_CHECKING:
    from logbook.services.advisor import AdviceService
    from logbook.services.auth import UserDirectory
    from logbook.services.entity_catalog import EntityCatalog
    from logbook.services.ledger import LocalLedger
    from logbook.services.sheet_client import SheetBridgeClient
    from logbook.services.sync_orchestrator import SyncOrchestrator


def get_settings_from_app(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise HTTPException(status_code=503, detail="Application settings are not initialized")
    return settings


def get_ledger(request: Request) -> "LocalLedger":
    service = getattr(request.app.state, "ledger", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Local ledger is not initialized")
    return service


def get_entity_catalog(request: Request) -> "EntityCatalog":
    service = getattr(request.app.state, "entity_catalog", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Entity catalog is not initialized")
    return service


def get_sheet_client(request: Request) -> "SheetBridgeClient":
    service = getattr(request.app.state, "sheet_client", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Sheet bridge client is not initialized")
    return service


def get_user_directory(request: Request) -> "UserDirectory":
    service = getattr(request.app.state, "user_directory", None)
    if service is None:
        raise HTTPException(status_code=503, detail="User directory is not initialized")
    return service


def get_sync_orchestrator(request: Request) -> "SyncOrchestrator":
    service = getattr(request.app.state, "sync_orchestrator", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Sync orchestrator is not initialized")
    return service


def get_advice_service(request: Request) -> "AdviceService":
    service = getattr(request.app.state, "advice_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Advice service is not initialized")
    return service


def get_current_user(users: "UserDirectory" = Depends(get_user_directory)) -> PublicUser:
    user = users.current_user()
    if user is None:
        raise HTTPException(status_code=401, detail="Login required")
    return user


def require_admin_user(
    user: PublicUser = Depends(get_current_user),
    users: "UserDirectory" = Depends(get_user_directory),
) -> PublicUser:
    try:
        return users.require_admin(user)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
