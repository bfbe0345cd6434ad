from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from logbook.core.config import Settings
from logbook.repositories.device_preferences import (
    API_KEY_KEY,
    GENERATORS_KEY,
    MACHINES_KEY,
    METERS_KEY,
    SHEET_URL_KEY,
    get_device_preference_value,
    upsert_device_preference,
)
from logbook.schemas.entities import (
    DEFAULT_GENERATORS,
    DEFAULT_MACHINES,
    DEFAULT_METERS,
    Generator,
    Machine,
    Meter,
)
from logbook.services.sheet_client import SheetBridgeClient, SheetBridgeError

SHARED_API_KEY_CONFIG_NAME = "GEMINI_API_KEY"
MIN_SHARED_API_KEY_LENGTH = 10

_EntityT = TypeVar("_EntityT", bound=BaseModel)


class EntityCatalog:
    """Cached machine, meter and generator descriptors plus bridge connection settings."""

    def __init__(self, *, settings: Settings, session_factory: sessionmaker) -> None:
        self._settings = settings
        self._session_factory = session_factory
        self._logger = logging.getLogger("logbook.catalog")

    def initialize_defaults(self) -> None:
        for key, defaults in (
            (MACHINES_KEY, DEFAULT_MACHINES),
            (METERS_KEY, DEFAULT_METERS),
            (GENERATORS_KEY, DEFAULT_GENERATORS),
        ):
            try:
                with self._session_factory() as db:
                    stored = get_device_preference_value(db, key=key)
                    if isinstance(stored, list) and len(stored) > 0:
                        continue
                    upsert_device_preference(
                        db,
                        key=key,
                        value_json=[item.model_dump() for item in defaults],
                    )
            except SQLAlchemyError:
                self._logger.exception("failed to seed default entity list key=%s", key)

    def get_machines(self) -> list[Machine]:
        return self._load_list(MACHINES_KEY, Machine, DEFAULT_MACHINES)

    def get_meters(self) -> list[Meter]:
        return self._load_list(METERS_KEY, Meter, DEFAULT_METERS)

    def get_generators(self) -> list[Generator]:
        return self._load_list(GENERATORS_KEY, Generator, DEFAULT_GENERATORS)

    def get_machine(self, machine_id: str) -> Machine | None:
        return next((item for item in self.get_machines() if item.id == machine_id), None)

    def machine_name(self, machine_id: str) -> str:
        return _name_for(self.get_machines(), machine_id)

    def meter_name(self, meter_id: str) -> str:
        return _name_for(self.get_meters(), meter_id)

    def generator_name(self, generator_id: str) -> str:
        return _name_for(self.get_generators(), generator_id)

    def resolve_machine_id(self, name: str | None) -> str:
        return _id_for_name(self.get_machines(), name)

    def resolve_meter_id(self, name: str | None) -> str:
        return _id_for_name(self.get_meters(), name)

    def resolve_generator_id(self, name: str | None) -> str:
        return _id_for_name(self.get_generators(), name)

    def replace_machines(self, machines: Sequence[Machine]) -> None:
        self._store_list(MACHINES_KEY, machines)

    def replace_meters(self, meters: Sequence[Meter]) -> None:
        self._store_list(METERS_KEY, meters)

    def replace_generators(self, generators: Sequence[Generator]) -> None:
        self._store_list(GENERATORS_KEY, generators)

    def get_sheet_url(self) -> str:
        stored = self._read_preference(SHEET_URL_KEY)
        if isinstance(stored, str) and stored.strip() != "":
            return stored.strip()
        return self._settings.sheet_bridge_default_url.strip()

    def save_sheet_url(self, url: str) -> None:
        with self._session_factory() as db:
            upsert_device_preference(db, key=SHEET_URL_KEY, value_json=url.strip())

    def get_api_key(self) -> str:
        stored = self._read_preference(API_KEY_KEY)
        if isinstance(stored, str) and stored.strip() != "":
            return stored.strip()
        return self._settings.gemini_api_key.strip()

    def save_api_key(self, api_key: str) -> None:
        with self._session_factory() as db:
            upsert_device_preference(db, key=API_KEY_KEY, value_json=api_key.strip())

    def upload_api_key(self, sheet_client: SheetBridgeClient, api_key: str) -> bool:
        try:
            sheet_client.set_config(key=SHARED_API_KEY_CONFIG_NAME, value=api_key.strip())
        except SheetBridgeError:
            self._logger.exception("failed to upload shared API key")
            return False
        return True

    def refresh_from_remote(self, sheet_client: SheetBridgeClient) -> dict[str, Any]:
        """Pull the shared API key and the three entity lists; every step is independent."""

        summary: dict[str, Any] = {"api_key_updated": False, "errors": {}}

        try:
            config = sheet_client.get_config()
            cloud_key = config.get(SHARED_API_KEY_CONFIG_NAME)
            if isinstance(cloud_key, str) and len(cloud_key.strip()) > MIN_SHARED_API_KEY_LENGTH:
                self.save_api_key(cloud_key)
                summary["api_key_updated"] = True
                self._logger.info("shared API key synced from cloud")
        except (SheetBridgeError, SQLAlchemyError) as exc:
            self._logger.info("cloud config fetch failed: %s", exc)
            summary["errors"]["config"] = str(exc)

        steps = (
            ("machines", sheet_client.get_machines, parse_machine_row, self.replace_machines),
            ("meters", sheet_client.get_meters, parse_meter_row, self.replace_meters),
            ("generators", sheet_client.get_generators, parse_generator_row, self.replace_generators),
        )
        for name, fetch, parse, replace in steps:
            try:
                rows = fetch()
                parsed = [item for item in (parse(row) for row in rows) if item is not None]
                if parsed:
                    replace(parsed)
                summary[name] = len(parsed)
            except (SheetBridgeError, SQLAlchemyError) as exc:
                self._logger.warning("entity list refresh failed list=%s error=%s", name, exc)
                summary["errors"][name] = str(exc)
        return summary

    def _load_list(
        self,
        key: str,
        model: type[_EntityT],
        defaults: Sequence[_EntityT],
    ) -> list[_EntityT]:
        stored = self._read_preference(key)
        if not isinstance(stored, list) or len(stored) == 0:
            return list(defaults)
        try:
            items = [model.model_validate(item) for item in stored]
        except ValidationError as exc:
            self._logger.warning("cached entity list unreadable key=%s error=%s", key, exc)
            return list(defaults)
        return items or list(defaults)

    def _store_list(self, key: str, items: Sequence[BaseModel]) -> None:
        with self._session_factory() as db:
            upsert_device_preference(db, key=key, value_json=[item.model_dump() for item in items])

    def _read_preference(self, key: str) -> Any:
        try:
            with self._session_factory() as db:
                return get_device_preference_value(db, key=key)
        except SQLAlchemyError:
            self._logger.exception("device preference read failed key=%s", key)
            return None


def parse_machine_row(row: dict[str, Any]) -> Machine | None:
    machine_id = _text(_find(row, "id"))
    if machine_id == "":
        return None
    machine_type = _text(_find(row, "type", "machineType")).upper() or "FREEZER"
    if machine_type not in ("FREEZER", "CHILLER"):
        machine_type = "FREEZER"
    return Machine(
        id=machine_id,
        name=_text(_find(row, "name", "machineName")) or machine_id,
        type=machine_type,
        default_setpoint=_float_or_zero(_find(row, "defaultSetpoint", "setpoint")),
    )


def parse_meter_row(row: dict[str, Any]) -> Meter | None:
    meter_id = _text(_find(row, "id"))
    if meter_id == "":
        return None
    return Meter(id=meter_id, name=_text(_find(row, "name", "meterName")) or meter_id)


def parse_generator_row(row: dict[str, Any]) -> Generator | None:
    generator_id = _text(_find(row, "id", "name", "generatorName"))
    if generator_id == "":
        return None
    return Generator(
        id=generator_id,
        name=_text(_find(row, "name", "generatorName")) or generator_id,
        model=_text(_find(row, "model", "make")),
        air_filter=_text(_find(row, "airFilter")),
        oil_filter=_text(_find(row, "oilFilter")),
        fuel_filter=_text(_find(row, "fuelFilter")),
        fan_belt=_text(_find(row, "fanBelt")),
        water_separator=_text(_find(row, "waterSeparator", "fuelWaterSeparator")),
    )


def _normalize_header(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch not in " _-")


def _find(row: dict[str, Any], *aliases: str) -> Any:
    normalized = {_normalize_header(str(key)): value for key, value in row.items()}
    for alias in aliases:
        value = normalized.get(_normalize_header(alias))
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _float_or_zero(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _name_for(items: Sequence[Machine | Meter | Generator], entity_id: str) -> str:
    for item in items:
        if item.id == entity_id:
            return item.name
    return entity_id


def _id_for_name(items: Sequence[Machine | Meter | Generator], name: str | None) -> str:
    needle = (name or "").strip().lower()
    if needle == "":
        return ""
    for item in items:
        if item.name.strip().lower() == needle:
            return item.id
    return ""
