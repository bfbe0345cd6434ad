from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from logbook.core.config import Settings
from logbook.repositories.device_preferences import (
    CURRENT_USER_KEY,
    USERS_KEY,
    delete_device_preference,
    get_device_preference_value,
    upsert_device_preference,
)
from logbook.schemas.entities import PublicUser, User, UserCreate
from logbook.services.sheet_client import (
    BridgeNotConfiguredError,
    SheetBridgeClient,
    SheetBridgeError,
)


class PermissionDeniedError(RuntimeError):
    pass


class DuplicateUserError(ValueError):
    pass


class UserDirectory:
    """Device-local user list with a protected default administrator.

    Users are mirrored to the bridge on add/remove; the cloud copy wins on
    ``sync_from_cloud`` except that the default administrator is always kept.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: sessionmaker,
        sheet_client: SheetBridgeClient,
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._sheet_client = sheet_client
        self._logger = logging.getLogger("logbook.auth")

    @property
    def default_admin(self) -> User:
        return User(
            username=self._settings.default_admin_username,
            password=self._settings.default_admin_password,
            name=self._settings.default_admin_name,
            role="ADMIN",
        )

    def is_default_admin(self, username: str) -> bool:
        return username.strip().lower() == self._settings.default_admin_username.strip().lower()

    def list_users(self) -> list[User]:
        stored = self._read(USERS_KEY)
        users: list[User] = []
        if isinstance(stored, list):
            for item in stored:
                try:
                    users.append(User.model_validate(item))
                except ValidationError:
                    self._logger.warning("skipping unreadable stored user entry")
        if not any(self.is_default_admin(user.username) for user in users):
            users.insert(0, self.default_admin)
            self._store_users(users)
        return users

    def login(self, username: str, password: str) -> PublicUser | None:
        needle = username.strip().lower()
        for user in self.list_users():
            if user.username.lower() == needle and user.password == password:
                public = user.public()
                self._write(CURRENT_USER_KEY, public.model_dump())
                self._logger.info("user logged in username=%s", public.username)
                return public
        self._logger.info("login rejected username=%s", username)
        return None

    def logout(self) -> None:
        try:
            with self._session_factory() as db:
                delete_device_preference(db, key=CURRENT_USER_KEY)
        except SQLAlchemyError:
            self._logger.exception("failed to clear current user")

    def current_user(self) -> PublicUser | None:
        stored = self._read(CURRENT_USER_KEY)
        if not isinstance(stored, dict):
            return None
        try:
            return PublicUser.model_validate(stored)
        except ValidationError:
            return None

    def add_user(self, payload: UserCreate) -> PublicUser:
        users = self.list_users()
        needle = payload.username.lower()
        if any(user.username.lower() == needle for user in users):
            raise DuplicateUserError(f"User '{payload.username}' already exists")

        user = User(**payload.model_dump())
        users.append(user)
        self._store_users(users)
        try:
            self._sheet_client.add_user(user.model_dump())
        except SheetBridgeError as exc:
            self._logger.warning("cloud add_user failed username=%s error=%s", user.username, exc)
        return user.public()

    def remove_user(self, username: str) -> bool:
        if self.is_default_admin(username):
            raise PermissionDeniedError("The default administrator cannot be removed")
        users = self.list_users()
        needle = username.strip().lower()
        remaining = [user for user in users if user.username.lower() != needle]
        if len(remaining) == len(users):
            return False
        self._store_users(remaining)
        try:
            self._sheet_client.delete_user(username)
        except SheetBridgeError as exc:
            self._logger.warning("cloud delete_user failed username=%s error=%s", username, exc)
        return True

    def sync_from_cloud(self) -> int | None:
        """Replace the local user list with the bridge copy; returns the user count or None when skipped."""

        try:
            rows = self._sheet_client.get_users()
        except BridgeNotConfiguredError:
            return None
        except SheetBridgeError as exc:
            self._logger.warning("cloud user sync failed: %s", exc)
            return None
        if rows is None:
            return None

        users = [self.default_admin]
        for row in rows:
            user = _parse_user_row(row)
            if user is None or self.is_default_admin(user.username):
                continue
            users.append(user)
        self._store_users(users)
        self._logger.info("users synced from cloud count=%d", len(users))
        return len(users)

    def require_admin(self, user: PublicUser | None) -> PublicUser:
        if user is None:
            raise PermissionDeniedError("Login required")
        if user.role != "ADMIN":
            raise PermissionDeniedError("Only administrators can perform this action")
        return user

    def _store_users(self, users: list[User]) -> None:
        self._write(USERS_KEY, [user.model_dump() for user in users])

    def _read(self, key: str) -> Any:
        try:
            with self._session_factory() as db:
                return get_device_preference_value(db, key=key)
        except SQLAlchemyError:
            self._logger.exception("device preference read failed key=%s", key)
            return None

    def _write(self, key: str, value: Any) -> None:
        try:
            with self._session_factory() as db:
                upsert_device_preference(db, key=key, value_json=value)
        except SQLAlchemyError:
            self._logger.exception("device preference write failed key=%s", key)


def _parse_user_row(row: dict[str, Any]) -> User | None:
    username = str(row.get("username") or "").strip()
    if username == "":
        return None
    role = str(row.get("role") or "USER").strip().upper()
    password = row.get("password")
    return User(
        username=username,
        password=None if password is None else str(password),
        name=str(row.get("name") or username).strip(),
        role="ADMIN" if role == "ADMIN" else "USER",
    )
