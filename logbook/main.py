from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from sqlalchemy.orm import Session

from logbook.api.advice import router as advice_router
from logbook.api.auth import router as auth_router
from logbook.api.bridge import router as bridge_router
from logbook.api.entities import router as entities_router
from logbook.api.records import router as records_router
from logbook.api.sync import router as sync_router
from logbook.core.config import get_settings
from logbook.core.logging import configure_logging, get_log_buffer
from logbook.db.session import SessionLocal, check_db_connection, engine, get_db, init_db
from logbook.services.advisor import AdviceService
from logbook.services.auth import UserDirectory
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.ledger import LocalLedger
from logbook.services.sheet_client import SheetBridgeClient
from logbook.services.sync_orchestrator import SyncOrchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(level=settings.log_level, service_name=settings.service_name)
    init_db(engine)

    entity_catalog = EntityCatalog(settings=settings, session_factory=SessionLocal)
    entity_catalog.initialize_defaults()
    sheet_client = SheetBridgeClient(
        url_provider=entity_catalog.get_sheet_url,
        timeout_seconds=settings.sheet_http_timeout_seconds,
    )
    ledger = LocalLedger(session_factory=SessionLocal)
    user_directory = UserDirectory(
        settings=settings,
        session_factory=SessionLocal,
        sheet_client=sheet_client,
    )
    sync_orchestrator = SyncOrchestrator(
        settings=settings,
        ledger=ledger,
        catalog=entity_catalog,
        sheet_client=sheet_client,
        users=user_directory,
    )
    advice_service = AdviceService(settings=settings, api_key_provider=entity_catalog.get_api_key)

    app.state.settings = settings
    app.state.entity_catalog = entity_catalog
    app.state.sheet_client = sheet_client
    app.state.ledger = ledger
    app.state.user_directory = user_directory
    app.state.sync_orchestrator = sync_orchestrator
    app.state.advice_service = advice_service

    sync_orchestrator.start()
    try:
        yield
    finally:
        sync_orchestrator.stop()


app = FastAPI(title="Facility Logbook", lifespan=lifespan)
app.include_router(auth_router)
app.include_router(records_router)
app.include_router(sync_router)
app.include_router(entities_router)
app.include_router(bridge_router)
app.include_router(advice_router)


@app.get("/health")
def health():
    return {"status": "ok", "service": "logbook"}


@app.get("/status")
def status(request: Request, db: Session = Depends(get_db)):
    db_ok, db_error = check_db_connection(db)
    sync_orchestrator: SyncOrchestrator | None = getattr(request.app.state, "sync_orchestrator", None)
    entity_catalog: EntityCatalog | None = getattr(request.app.state, "entity_catalog", None)
    advice_service: AdviceService | None = getattr(request.app.state, "advice_service", None)

    return {
        "database": {"ok": db_ok, "error": db_error},
        "sync": sync_orchestrator.get_status_snapshot() if sync_orchestrator else None,
        "bridge": {
            "configured": bool(entity_catalog and entity_catalog.get_sheet_url()),
        },
        "advisor": {"configured": bool(advice_service and advice_service.configured)},
        "logs": get_log_buffer(limit=50),
    }
