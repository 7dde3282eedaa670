"""Outbox of appointment lifecycle events. Written in the booking transaction; drained by the event job.

processed_at NULL = pending. Rows are never rewritten except to stamp processed_at.
"""
from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from ayursutra.db.base import Base
from ayursutra.models.types import JSONDocument


class AppointmentEvent(Base):
    __tablename__ = "appointment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Integer, nullable=False, index=True)
    practitioner_id = Column(String(64), nullable=False)
    event_type = Column(String(32), nullable=False)  # requested | confirmed | rescheduled | cancelled | completed
    payload = Column(JSONDocument, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_appointment_events_pending", "processed_at", "id"),)
