from __future__ import annotations

from unittest import TestCase

from sqlalchemy.orm import sessionmaker

from logbook.core.config import Settings
from logbook.db.session import build_engine, build_session_factory, init_db
from logbook.schemas.entities import PublicUser, UserCreate
from logbook.services.auth import DuplicateUserError, PermissionDeniedError, UserDirectory
from logbook.services.sheet_client import BridgeNotConfiguredError, SheetBridgeError


def _session_factory() -> sessionmaker:
    engine = build_engine("sqlite://")
    init_db(engine)
    return build_session_factory(engine)


class _FakeUserClient:
    def __init__(self, users: list[dict] | None = None) -> None:
        self.users = users
        self.added: list[dict] = []
        self.deleted: list[str] = []
        self.fail_writes = False
        self.unconfigured = False

    def get_users(self):
        if self.unconfigured:
            raise BridgeNotConfiguredError()
        return self.users

    def add_user(self, user):
        if self.fail_writes:
            raise SheetBridgeError(status_code=503, detail="offline")
        self.added.append(user)

    def delete_user(self, username):
        if self.fail_writes:
            raise SheetBridgeError(status_code=503, detail="offline")
        self.deleted.append(username)


class UserDirectoryTests(TestCase):
    def setUp(self) -> None:
        self.client = _FakeUserClient()
        self.users = UserDirectory(
            settings=Settings(default_admin_username="admin", default_admin_password="admin"),
            session_factory=_session_factory(),
            sheet_client=self.client,
        )

    def test_default_admin_is_seeded_and_can_log_in(self) -> None:
        user = self.users.login("ADMIN", "admin")

        self.assertEqual(user, PublicUser(username="admin", name="System Admin", role="ADMIN"))
        self.assertEqual(self.users.current_user(), user)

    def test_wrong_password_is_rejected(self) -> None:
        self.assertIsNone(self.users.login("admin", "Admin"))
        self.assertIsNone(self.users.current_user())

    def test_logout_clears_current_user(self) -> None:
        self.users.login("admin", "admin")
        self.users.logout()

        self.assertIsNone(self.users.current_user())

    def test_add_user_rejects_duplicates_and_mirrors_to_cloud(self) -> None:
        self.users.add_user(UserCreate(username="kyaw", password="pw", name="Kyaw"))

        with self.assertRaises(DuplicateUserError):
            self.users.add_user(UserCreate(username="KYAW", password="other", name="Dup"))
        self.assertEqual([item["username"] for item in self.client.added], ["kyaw"])
        self.assertIsNotNone(self.users.login("kyaw", "pw"))

    def test_cloud_failure_keeps_local_add(self) -> None:
        self.client.fail_writes = True

        with self.assertLogs("logbook.auth", level="WARNING"):
            self.users.add_user(UserCreate(username="mya", password="pw", name="Mya"))

        self.assertIn("mya", [user.username for user in self.users.list_users()])

    def test_default_admin_cannot_be_removed(self) -> None:
        with self.assertRaises(PermissionDeniedError):
            self.users.remove_user("Admin")

        self.users.add_user(UserCreate(username="kyaw", password="pw", name="Kyaw"))
        self.assertTrue(self.users.remove_user("kyaw"))
        self.assertFalse(self.users.remove_user("kyaw"))
        self.assertEqual(self.client.deleted, ["kyaw"])

    def test_sync_from_cloud_replaces_list_but_keeps_admin(self) -> None:
        self.users.add_user(UserCreate(username="local-only", password="pw", name="Local"))
        self.client.users = [
            {"username": "zaw", "password": "1234", "name": "Zaw", "role": "admin"},
            {"username": "admin", "password": "hijack", "name": "Fake", "role": "USER"},
            {"username": "", "password": "x"},
        ]

        count = self.users.sync_from_cloud()

        self.assertEqual(count, 2)
        usernames = [user.username for user in self.users.list_users()]
        self.assertEqual(usernames, ["admin", "zaw"])
        self.assertIsNotNone(self.users.login("admin", "admin"))
        self.assertEqual(self.users.login("zaw", "1234").role, "ADMIN")

    def test_sync_from_cloud_skips_quietly_without_bridge(self) -> None:
        self.client.unconfigured = True

        self.assertIsNone(self.users.sync_from_cloud())

    def test_require_admin(self) -> None:
        admin = PublicUser(username="admin", name="System Admin", role="ADMIN")
        operator = PublicUser(username="kyaw", name="Kyaw", role="USER")

        self.assertEqual(self.users.require_admin(admin), admin)
        with self.assertRaises(PermissionDeniedError):
            self.users.require_admin(operator)
        with self.assertRaises(PermissionDeniedError):
            self.users.require_admin(None)
