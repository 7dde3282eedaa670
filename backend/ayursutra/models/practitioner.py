"""Practitioner registry: tells known practitioner ids from unknown ones. Profile data lives elsewhere."""
from sqlalchemy import Boolean, Column, DateTime, String, true
from sqlalchemy.sql import func

from ayursutra.db.base import Base


class Practitioner(Base):
    __tablename__ = "practitioners"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    specialization = Column(String(128), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
