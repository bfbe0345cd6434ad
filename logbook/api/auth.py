from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from logbook.core.config import Settings
from logbook.dependencies import (
    get_current_user,
    get_settings_from_app,
    get_sync_orchestrator,
    get_user_directory,
    require_admin_user,
)
from logbook.schemas.entities import LoginRequest, PublicUser, UserCreate
from logbook.services.auth import DuplicateUserError, PermissionDeniedError, UserDirectory
from logbook.services.sync_orchestrator import SyncInProgressError, SyncOrchestrator

router = APIRouter(prefix="/api", tags=["auth"])
logger = logging.getLogger("logbook.auth_api")


@router.post("/auth/login", response_model=PublicUser)
def login(
    payload: LoginRequest,
    settings: Settings = Depends(get_settings_from_app),
    users: UserDirectory = Depends(get_user_directory),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> PublicUser:
    user = users.login(payload.username, payload.password)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    if not settings.sync_on_login:
        return user
    try:
        orchestrator.request_full_sync(trigger="login")
    except SyncInProgressError:
        logger.info("login sync not scheduled, cycle already running")
    return user


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(users: UserDirectory = Depends(get_user_directory)) -> Response:
    users.logout()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/auth/me", response_model=PublicUser)
def me(user: PublicUser = Depends(get_current_user)) -> PublicUser:
    return user


@router.get("/users", response_model=list[PublicUser])
def list_users(
    _: PublicUser = Depends(require_admin_user),
    users: UserDirectory = Depends(get_user_directory),
) -> list[PublicUser]:
    return [user.public() for user in users.list_users()]


@router.post("/users", response_model=PublicUser, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    _: PublicUser = Depends(require_admin_user),
    users: UserDirectory = Depends(get_user_directory),
) -> PublicUser:
    try:
        return users.add_user(payload)
    except DuplicateUserError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.delete("/users/{username}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    username: str,
    _: PublicUser = Depends(require_admin_user),
    users: UserDirectory = Depends(get_user_directory),
) -> Response:
    try:
        removed = users.remove_user(username)
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User '{username}' not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
