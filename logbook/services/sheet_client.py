from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen


class SheetBridgeError(RuntimeError):
    def __init__(self, *, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Sheet bridge error {status_code}: {detail}")


class BridgeNotConfiguredError(SheetBridgeError):
    def __init__(self) -> None:
        super().__init__(status_code=412, detail="No sheet URL configured")


class SheetBridgeClient:
    """JSON-over-POST client for the spreadsheet bridge script.

    Every call is ``{"action": <VERB>, ...payload}``; the bridge answers
    ``{"success": true, ...}`` or ``{"success": false, "error": "..."}``.
    """

    def __init__(
        self,
        *,
        url_provider: Callable[[], str],
        timeout_seconds: float = 30.0,
    ):
        self._url_provider = url_provider
        self._timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool((self._url_provider() or "").strip())

    def sync_machine_logs(self, rows: list[dict[str, Any]]) -> dict[str, Any]:
        return self.invoke("SYNC_LOGS", data=rows)

    def sync_meter_logs(self, rows: list[dict[str, Any]]) -> dict[str, Any]:
        return self.invoke("SYNC_METER_LOGS", data=rows)

    def sync_generator_logs(self, rows: list[dict[str, Any]]) -> dict[str, Any]:
        return self.invoke("SYNC_GEN_LOGS", data=rows)

    def get_machine_logs(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_LOGS").get("logs"))

    def get_meter_logs(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_METER_LOGS").get("logs"))

    def get_generator_logs(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_GEN_LOGS").get("logs"))

    def get_machines(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_MACHINES").get("machines"))

    def get_meters(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_METERS").get("meters"))

    def get_generators(self) -> list[dict[str, Any]]:
        return _object_list(self.invoke("GET_GENERATORS").get("generators"))

    def get_users(self) -> list[dict[str, Any]] | None:
        users = self.invoke("GET_USERS").get("users")
        if not isinstance(users, list):
            return None
        return _object_list(users)

    def add_user(self, user: dict[str, Any]) -> None:
        self.invoke("ADD_USER", user=user)

    def delete_user(self, username: str) -> None:
        self.invoke("DELETE_USER", username=username)

    def get_config(self) -> dict[str, Any]:
        config = self.invoke("GET_CONFIG").get("config")
        return config if isinstance(config, dict) else {}

    def set_config(self, *, key: str, value: Any) -> None:
        self.invoke("SET_CONFIG", key=key, value=value)

    def invoke(self, action: str, **payload: Any) -> dict[str, Any]:
        url = (self._url_provider() or "").strip()
        if url == "":
            raise BridgeNotConfiguredError()

        body = json.dumps({"action": action, **payload}).encode("utf-8")
        # The bridge script reads the raw body; it must stay text/plain.
        request = Request(
            url=url,
            method="POST",
            data=body,
            headers={"Content-Type": "text/plain;charset=utf-8"},
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                status_code = response.status
                text = response.read().decode("utf-8", errors="replace")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise SheetBridgeError(status_code=exc.code, detail=detail or str(exc.reason))
        except URLError as exc:
            raise SheetBridgeError(status_code=503, detail=f"Connection failed: {exc.reason}")
        except TimeoutError as exc:
            raise SheetBridgeError(status_code=504, detail=str(exc))

        if status_code not in (200, 201):
            raise SheetBridgeError(status_code=status_code, detail=text or "Unexpected bridge response")
        try:
            result = json.loads(text) if text else {}
        except json.JSONDecodeError as exc:
            raise SheetBridgeError(status_code=502, detail=f"Invalid bridge JSON response: {exc}") from exc
        if not isinstance(result, dict):
            raise SheetBridgeError(status_code=502, detail="Bridge response is not a JSON object")
        if result.get("success") is False:
            raise SheetBridgeError(
                status_code=502,
                detail=str(result.get("error") or f"Bridge action {action} failed"),
            )
        return result


def _object_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
