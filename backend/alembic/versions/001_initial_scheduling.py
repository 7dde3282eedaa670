"""practitioners, practitioner_availability, unavailable_dates, appointments (+ active-slot unique index), appointment_events."""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
_ACTIVE = "status IN ('requested', 'confirmed', 'rescheduled')"


def upgrade() -> None:
    op.create_table(
        "practitioners",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("specialization", sa.String(128), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "practitioner_availability",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("practitioner_id", sa.String(64), nullable=False),
        sa.Column("slot_length", sa.Integer(), nullable=False),
        sa.Column("buffer_before", sa.Integer(), nullable=False),
        sa.Column("buffer_after", sa.Integer(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.Column("weekly_hours", _JSON, nullable=False),
        sa.Column("exceptions", _JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_practitioner_availability_practitioner_id", "practitioner_availability", ["practitioner_id"], unique=True
    )

    op.create_table(
        "unavailable_dates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("practitioner_id", sa.String(64), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("reason", sa.String(200), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("practitioner_id", "date", name="uq_unavailable_dates_practitioner_date"),
    )
    op.create_index("ix_unavailable_dates_practitioner_id", "unavailable_dates", ["practitioner_id"])
    op.create_index("ix_unavailable_dates_date", "unavailable_dates", ["date"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("practitioner_id", sa.String(64), nullable=False),
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("slot_start_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_end_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="requested"),
        sa.Column("created_by", sa.String(16), nullable=False, server_default="patient"),
        sa.Column("type", sa.String(16), nullable=False, server_default="consultation"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index("ix_appointments_practitioner_date", "appointments", ["practitioner_id", "date"])
    op.create_index("ix_appointments_status_date", "appointments", ["status", "date"])
    # Commit-time double-booking guard: one active appointment per practitioner per slot start.
    op.create_index(
        "uq_appointments_active_practitioner_slot",
        "appointments",
        ["practitioner_id", "slot_start_utc"],
        unique=True,
        postgresql_where=sa.text(_ACTIVE),
        sqlite_where=sa.text(_ACTIVE),
    )

    op.create_table(
        "appointment_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("appointment_id", sa.Integer(), nullable=False),
        sa.Column("practitioner_id", sa.String(64), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("payload", _JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_appointment_events_appointment_id", "appointment_events", ["appointment_id"])
    op.create_index("ix_appointment_events_pending", "appointment_events", ["processed_at", "id"])


def downgrade() -> None:
    op.drop_index("ix_appointment_events_pending", table_name="appointment_events")
    op.drop_index("ix_appointment_events_appointment_id", table_name="appointment_events")
    op.drop_table("appointment_events")
    op.drop_index("uq_appointments_active_practitioner_slot", table_name="appointments")
    op.drop_index("ix_appointments_status_date", table_name="appointments")
    op.drop_index("ix_appointments_practitioner_date", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_unavailable_dates_date", table_name="unavailable_dates")
    op.drop_index("ix_unavailable_dates_practitioner_id", table_name="unavailable_dates")
    op.drop_table("unavailable_dates")
    op.drop_index("ix_practitioner_availability_practitioner_id", table_name="practitioner_availability")
    op.drop_table("practitioner_availability")
    op.drop_table("practitioners")
