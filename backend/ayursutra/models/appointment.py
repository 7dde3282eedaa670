"""Booked appointment. Only requested | confirmed | rescheduled hold the practitioner's time range.

The partial unique index on (practitioner_id, slot_start_utc) over active statuses is the commit-time
guard against double booking: of two concurrent inserts for the same slot, the second is rejected.
Status changes are compare-and-set on `version`, so a transition decided on a stale read never lands.
"""
from sqlalchemy import Column, DateTime, Index, Integer, String, Text, text
from sqlalchemy.sql import func

from ayursutra.db.base import Base
from ayursutra.db.tables import ACTIVE_APPOINTMENT_STATUSES

_ACTIVE_PREDICATE = "status IN ({})".format(", ".join(f"'{s}'" for s in ACTIVE_APPOINTMENT_STATUSES))


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practitioner_id = Column(String(64), nullable=False)
    patient_id = Column(String(64), nullable=False, index=True)
    date = Column(String(10), nullable=False)  # YYYY-MM-DD, the calendar day the slot was generated for
    slot_start_utc = Column(DateTime(timezone=True), nullable=False)
    slot_end_utc = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    status = Column(String(16), nullable=False, default="requested")  # requested | confirmed | rescheduled | cancelled | completed
    created_by = Column(String(16), nullable=False, default="patient")  # patient | practitioner
    type = Column(String(16), nullable=False, default="consultation")  # consultation | therapy | follow-up | emergency
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped on every UPDATE; a write from a stale read matches no row and raises StaleDataError
    version = Column(Integer, nullable=False, server_default="1")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_appointments_practitioner_date", "practitioner_id", "date"),
        Index("ix_appointments_status_date", "status", "date"),
        Index(
            "uq_appointments_active_practitioner_slot",
            "practitioner_id",
            "slot_start_utc",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
    )
