"""
Unavailability store: practitioner full-day blackout dates.

A blackout wins over weekly hours and exceptions. Adding one does not touch existing appointments: they are
reported back so the practitioner can cancel or reschedule them.
"""
import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ayursutra.core.errors import PractitionerNotFoundError
from ayursutra.core.timerange import parse_date
from ayursutra.models.unavailable_date import UnavailableDate
from ayursutra.services.availability_service import practitioner_exists
from ayursutra.services.appointment_store import appointment_to_dict, find_active

logger = logging.getLogger(__name__)


def is_blocked(db: Session, practitioner_id: str, date_str: str) -> bool:
    return (
        db.query(UnavailableDate.id)
        .filter(UnavailableDate.practitioner_id == practitioner_id, UnavailableDate.date == date_str)
        .first()
        is not None
    )


def list_unavailable_dates(
    db: Session,
    practitioner_id: str,
    start: str | None = None,
    end: str | None = None,
) -> list[UnavailableDate]:
    q = db.query(UnavailableDate).filter(UnavailableDate.practitioner_id == practitioner_id)
    # YYYY-MM-DD strings sort chronologically
    if start:
        q = q.filter(UnavailableDate.date >= parse_date(start).isoformat())
    if end:
        q = q.filter(UnavailableDate.date <= parse_date(end).isoformat())
    return q.order_by(UnavailableDate.date.asc()).all()


def add_unavailable_date(
    db: Session,
    practitioner_id: str,
    date_str: str,
    reason: str = "",
    today: date | None = None,
) -> dict:
    """
    Mark date_str unavailable. Past dates raise ValueError; an existing blackout is returned as-is.
    Returns {"unavailable_date": row, "created": bool, "conflicting_appointments": [...]}.
    """
    day = parse_date(date_str)
    today = today or datetime.now(timezone.utc).date()
    if day < today:
        raise ValueError("Cannot add unavailable dates in the past")
    if not practitioner_exists(db, practitioner_id):
        raise PractitionerNotFoundError(f"Practitioner {practitioner_id} not found")

    created = False
    row = (
        db.query(UnavailableDate)
        .filter(UnavailableDate.practitioner_id == practitioner_id, UnavailableDate.date == day.isoformat())
        .first()
    )
    if row is None:
        row = UnavailableDate(practitioner_id=practitioner_id, date=day.isoformat(), reason=(reason or "")[:200])
        db.add(row)
        try:
            db.commit()
            created = True
            logger.info("Practitioner %s marked %s unavailable", practitioner_id, row.date)
        except IntegrityError:
            db.rollback()
            row = (
                db.query(UnavailableDate)
                .filter(UnavailableDate.practitioner_id == practitioner_id, UnavailableDate.date == day.isoformat())
                .one()
            )
        db.refresh(row)

    conflicting = [appointment_to_dict(a) for a in find_active(db, practitioner_id, row.date)]
    if conflicting:
        logger.warning(
            "Unavailable date %s for practitioner %s overlaps %s active appointment(s)",
            row.date, practitioner_id, len(conflicting),
        )
    return {"unavailable_date": row, "created": created, "conflicting_appointments": conflicting}


def remove_unavailable_date(db: Session, practitioner_id: str, date_str: str) -> bool:
    """Remove the blackout on date_str. Returns False if there was none."""
    day = parse_date(date_str).isoformat()
    row = (
        db.query(UnavailableDate)
        .filter(UnavailableDate.practitioner_id == practitioner_id, UnavailableDate.date == day)
        .first()
    )
    if row is None:
        return False
    db.delete(row)
    db.commit()
    logger.info("Practitioner %s unblocked %s", practitioner_id, day)
    return True


def remove_unavailable_dates(db: Session, practitioner_id: str, dates: list[str]) -> dict:
    """
    Remove several blackouts in one transaction. A malformed or unknown date is reported, not fatal.
    Returns {"removed": [date, ...], "errors": [{"date": ..., "error": ...}, ...]}.
    """
    if not dates:
        raise ValueError("At least one date is required")
    removed: list[str] = []
    errors: list[dict] = []
    for date_str in dict.fromkeys(dates):
        try:
            day = parse_date(date_str).isoformat()
        except ValueError:
            errors.append({"date": date_str, "error": "Invalid date format. Use YYYY-MM-DD"})
            continue
        row = (
            db.query(UnavailableDate)
            .filter(UnavailableDate.practitioner_id == practitioner_id, UnavailableDate.date == day)
            .first()
        )
        if row is None:
            errors.append({"date": day, "error": "Unavailable date not found"})
            continue
        db.delete(row)
        removed.append(day)
    if removed:
        db.commit()
        logger.info("Practitioner %s unblocked %s date(s)", practitioner_id, len(removed))
    return {"removed": removed, "errors": errors}


def unavailable_date_to_dict(row: UnavailableDate) -> dict:
    return {
        "id": row.id,
        "practitioner_id": row.practitioner_id,
        "date": row.date,
        "reason": row.reason or "",
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
