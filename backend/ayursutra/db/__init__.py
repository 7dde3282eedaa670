from ayursutra.db.base import Base
from ayursutra.db.session import get_db, engine, SessionLocal
from ayursutra.db.tables import ACTIVE_APPOINTMENT_STATUSES, ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES", "ACTIVE_APPOINTMENT_STATUSES"]
