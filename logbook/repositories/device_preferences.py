from __future__ import annotations

from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from logbook.db.models import DevicePreference

SHEET_URL_KEY = "sheet_url"
API_KEY_KEY = "gemini_api_key"
MACHINES_KEY = "machines"
METERS_KEY = "meters"
GENERATORS_KEY = "generators"
USERS_KEY = "users"
CURRENT_USER_KEY = "current_user"


def get_device_preference(db: Session, *, key: str) -> DevicePreference | None:
    return db.get(DevicePreference, key)


def get_device_preference_value(db: Session, *, key: str, default: Any = None) -> Any:
    preference = get_device_preference(db, key=key)
    if preference is None:
        return default
    return preference.value_json


def upsert_device_preference(db: Session, *, key: str, value_json: Any) -> DevicePreference:
    preference = db.get(DevicePreference, key)
    if preference is None:
        preference = DevicePreference(key=key, value_json=value_json)
        db.add(preference)
    else:
        preference.value_json = value_json
    db.commit()
    db.refresh(preference)
    return preference


def delete_device_preference(db: Session, *, key: str) -> bool:
    result = db.execute(delete(DevicePreference).where(DevicePreference.key == key))
    db.commit()
    return bool(result.rowcount)
