"""One row per practitioner: slot length, buffers, timezone, weekly hours and date exceptions.

weekly_hours: {"0".."6": {"start": "HH:MM", "end": "HH:MM"} | null}, 0 = Sunday. JSON keys are strings.
exceptions:   {"YYYY-MM-DD": {"type": "block"} | {"type": "partial", "start": "HH:MM", "end": "HH:MM"}}.
Created by get-or-create on first access; never deleted while the practitioner exists.
"""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ayursutra.db.base import Base
from ayursutra.models.types import JSONDocument


class PractitionerAvailability(Base):
    __tablename__ = "practitioner_availability"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practitioner_id = Column(String(64), nullable=False, unique=True, index=True)
    slot_length = Column(Integer, nullable=False, default=30)
    buffer_before = Column(Integer, nullable=False, default=10)
    buffer_after = Column(Integer, nullable=False, default=10)
    timezone = Column(String(64), nullable=False, default="Asia/Kolkata")
    weekly_hours = Column(JSONDocument, nullable=False, default=dict)
    exceptions = Column(JSONDocument, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
