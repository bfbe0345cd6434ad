"""initial ledger and device preferences

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ledger_records",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("record_type", sa.String(length=32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("machine_id", sa.String(length=128), nullable=True),
        sa.Column("meter_id", sa.String(length=128), nullable=True),
        sa.Column("generator_id", sa.String(length=128), nullable=True),
        sa.Column("recorded_by", sa.String(length=255), nullable=True),
        sa.Column("synced_to_sheet", sa.Boolean(), server_default="0", nullable=False),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "record_type IN ('TEMPERATURE','MAINTENANCE','METER_READING','GENERATOR_RUN','GENERATOR_SERVICE')",
            name="ck_ledger_records_record_type",
        ),
        sa.CheckConstraint(
            "("
            "CASE WHEN machine_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN meter_id IS NOT NULL THEN 1 ELSE 0 END"
            " + CASE WHEN generator_id IS NOT NULL THEN 1 ELSE 0 END"
            ") = 1",
            name="ck_ledger_records_single_entity",
        ),
        sa.CheckConstraint(
            "("
            "(record_type IN ('TEMPERATURE','MAINTENANCE') AND machine_id IS NOT NULL)"
            " OR "
            "(record_type = 'METER_READING' AND meter_id IS NOT NULL)"
            " OR "
            "(record_type IN ('GENERATOR_RUN','GENERATOR_SERVICE') AND generator_id IS NOT NULL)"
            ")",
            name="ck_ledger_records_entity_matches_kind",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ledger_records_position", "ledger_records", ["position"])
    op.create_index("ix_ledger_records_synced", "ledger_records", ["synced_to_sheet"])

    op.create_table(
        "device_preferences",
        sa.Column("key", sa.String(length=64), nullable=False),
        sa.Column("value_json", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("device_preferences")
    op.drop_index("ix_ledger_records_synced", table_name="ledger_records")
    op.drop_index("ix_ledger_records_position", table_name="ledger_records")
    op.drop_table("ledger_records")
