from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from logbook.dependencies import get_entity_catalog, get_sheet_client, require_admin_user
from logbook.schemas.entities import (
    ApiKeyUpdate,
    BridgeSettingsResponse,
    BridgeUrlUpdate,
    PublicUser,
)
from logbook.services.entity_catalog import EntityCatalog
from logbook.services.sheet_client import SheetBridgeClient

router = APIRouter(prefix="/api", tags=["bridge"])
logger = logging.getLogger("logbook.bridge_api")


def _settings_response(catalog: EntityCatalog) -> BridgeSettingsResponse:
    sheet_url = catalog.get_sheet_url()
    return BridgeSettingsResponse(
        sheet_url=sheet_url,
        configured=sheet_url != "",
        api_key_configured=catalog.get_api_key() != "",
    )


@router.get("/bridge", response_model=BridgeSettingsResponse)
def get_bridge_settings(catalog: EntityCatalog = Depends(get_entity_catalog)) -> BridgeSettingsResponse:
    return _settings_response(catalog)


@router.put("/bridge", response_model=BridgeSettingsResponse)
def update_bridge_url(
    payload: BridgeUrlUpdate,
    _: PublicUser = Depends(require_admin_user),
    catalog: EntityCatalog = Depends(get_entity_catalog),
) -> BridgeSettingsResponse:
    catalog.save_sheet_url(payload.sheet_url)
    logger.info("sheet bridge url updated configured=%s", payload.sheet_url.strip() != "")
    return _settings_response(catalog)


@router.put("/bridge/api-key", response_model=BridgeSettingsResponse)
def update_api_key(
    payload: ApiKeyUpdate,
    _: PublicUser = Depends(require_admin_user),
    catalog: EntityCatalog = Depends(get_entity_catalog),
    sheet_client: SheetBridgeClient = Depends(get_sheet_client),
) -> BridgeSettingsResponse:
    catalog.save_api_key(payload.api_key)
    if payload.upload_to_cloud and sheet_client.configured:
        if not catalog.upload_api_key(sheet_client, payload.api_key):
            logger.warning("shared API key saved locally but cloud upload failed")
    return _settings_response(catalog)
