from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

SyncPhase = Literal["IDLE", "PUSHING", "CONFIG_REFRESH", "PULLING"]


class SkippedRow(BaseModel):
    kind: str
    reason: str
    row_id: str | None = None


class SyncCycleResponse(BaseModel):
    trigger: str
    status: Literal["ok", "partial", "skipped"]
    started_at: str | None = None
    finished_at: str | None = None
    pushed_ids: list[str] = Field(default_factory=list)
    failed_batches: list[dict[str, Any]] = Field(default_factory=list)
    pulled_count: int = 0
    skipped_rows: list[SkippedRow] = Field(default_factory=list)
    phase_errors: dict[str, str] = Field(default_factory=dict)


class SyncStatusResponse(BaseModel):
    phase: SyncPhase
    running: bool
    pending_count: int
    last_trigger: str | None = None
    last_error: str | None = None
    last_report: SyncCycleResponse | None = None


class SyncTriggerResponse(BaseModel):
    accepted: bool
    trigger: str
