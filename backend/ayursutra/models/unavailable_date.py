"""Practitioner full-day blackout. Takes precedence over weekly hours and exceptions for that date."""
from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from ayursutra.db.base import Base


class UnavailableDate(Base):
    __tablename__ = "unavailable_dates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    practitioner_id = Column(String(64), nullable=False, index=True)
    date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD
    reason = Column(String(200), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("practitioner_id", "date", name="uq_unavailable_dates_practitioner_date"),)
