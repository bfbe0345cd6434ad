from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(default="sqlite:///./logbook.db")
    sheet_bridge_default_url: str = Field(default="")
    sheet_http_timeout_seconds: float = Field(default=30.0, ge=1.0, le=600.0)
    sheet_pull_limit_machine_logs: int = Field(default=2000, ge=1, le=100000)
    sheet_pull_limit_meter_logs: int = Field(default=1000, ge=1, le=100000)
    sheet_pull_limit_generator_logs: int = Field(default=500, ge=1, le=100000)
    sync_on_startup: bool = Field(default=True)
    sync_on_login: bool = Field(default=True)
    display_timezone: str = Field(default="UTC")
    gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    gemini_model: str = Field(default="gemini-2.5-flash")
    gemini_api_key: str = Field(default="")
    gemini_timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)
    generator_service_interval_hours: float = Field(default=500.0, gt=0.0)
    generator_service_warning_hours: float = Field(default=450.0, gt=0.0)
    default_admin_username: str = Field(default="admin")
    default_admin_password: str = Field(default="admin")
    default_admin_name: str = Field(default="System Admin")
    log_level: str = Field(default="INFO")
    service_name: str = Field(default="facility-logbook")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
