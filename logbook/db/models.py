from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from logbook.db.base import Base


class LedgerRecord(Base):
    __tablename__ = "ledger_records"
    __table_args__ = (
        CheckConstraint(
            "record_type IN ('TEMPERATURE','MAINTENANCE','METER_READING','GENERATOR_RUN','GENERATOR_SERVICE')",
            name="ck_ledger_records_record_type",
        ),
        CheckConstraint(
            "("
            "CASE WHEN machine_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN meter_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN generator_id IS NOT NULL THEN 1 ELSE 0 END"
            ") = 1",
            name="ck_ledger_records_single_entity",
        ),
        CheckConstraint(
            "("
            "(record_type IN ('TEMPERATURE','MAINTENANCE') AND machine_id IS NOT NULL)"
            " OR "
            "(record_type = 'METER_READING' AND meter_id IS NOT NULL)"
            " OR "
            "(record_type IN ('GENERATOR_RUN','GENERATOR_SERVICE') AND generator_id IS NOT NULL)"
            ")",
            name="ck_ledger_records_entity_matches_kind",
        ),
        Index("ix_ledger_records_position", "position"),
        Index("ix_ledger_records_synced", "synced_to_sheet"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    record_type: Mapped[str] = mapped_column(String(32), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    machine_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    meter_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    generator_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    recorded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    synced_to_sheet: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default="0",
        nullable=False,
    )
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class DevicePreference(Base):
    __tablename__ = "device_preferences"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value_json: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
