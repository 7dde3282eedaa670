"""Shared test fixtures and helpers."""
import os

# Settings are read at import time; point them at SQLite and keep the scheduler off before importing the app.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ayursutra.db.base import Base
from ayursutra.db.session import get_db
from ayursutra.main import app
from ayursutra.models.practitioner import Practitioner
from ayursutra.models.practitioner_availability import PractitionerAvailability

# Fixed dates well in the future. 2030-01-07 is a Monday.
MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
SATURDAY = "2030-01-05"
SUNDAY = "2030-01-06"

WEEKDAY_HOURS = {str(d): {"start": "09:00", "end": "17:00"} for d in range(1, 6)}


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def file_engine(tmp_path):
    """
    File-backed SQLite shared by several threads. Every transaction starts with BEGIN IMMEDIATE so
    writers queue on the database lock instead of failing with 'database is locked'.
    """
    eng = create_engine(
        f"sqlite:///{tmp_path / 'scheduling.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(eng, "connect")
    def _no_driver_transactions(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @event.listens_for(eng, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def client(session_factory):
    def _get_test_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def make_practitioner(
    db,
    practitioner_id: str = "pr-1",
    *,
    with_availability: bool = True,
    slot_length: int = 30,
    buffer_before: int = 10,
    buffer_after: int = 10,
    timezone: str = "UTC",
    weekly_hours: dict | None = None,
    exceptions: dict | None = None,
) -> Practitioner:
    """Register a practitioner and, by default, store an explicit availability row (UTC, Mon-Fri 09-17)."""
    row = Practitioner(id=practitioner_id, name=f"Dr. {practitioner_id}", specialization="Panchakarma")
    db.add(row)
    if with_availability:
        db.add(
            PractitionerAvailability(
                practitioner_id=practitioner_id,
                slot_length=slot_length,
                buffer_before=buffer_before,
                buffer_after=buffer_after,
                timezone=timezone,
                weekly_hours=WEEKDAY_HOURS if weekly_hours is None else weekly_hours,
                exceptions=exceptions or {},
            )
        )
    db.commit()
    return row


def utc(date_str: str, hhmm: str) -> str:
    """ISO instant for date_str at hhmm UTC."""
    return f"{date_str}T{hhmm}:00+00:00"
