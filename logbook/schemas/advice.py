from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

AdviceLanguage = Literal["English", "Myanmar"]
EquipmentKind = Literal["refrigeration", "generator"]


class MaintenanceAdviceRequest(BaseModel):
    equipment_name: str = Field(min_length=1)
    issue_description: str = Field(min_length=1)
    photo_data: str | None = None
    language: AdviceLanguage = "English"
    equipment_kind: EquipmentKind = "refrigeration"


class AdviceResponse(BaseModel):
    advice: str


class AnomalyRequest(BaseModel):
    current_temp: float
    setpoint: float
    machine_type: str = "FREEZER"


class AnomalyResponse(BaseModel):
    is_anomaly: bool
    message: str


class DailyReportRequest(BaseModel):
    machine_id: str = Field(min_length=1)
