"""
Slot generation, validation and next-available search over the stores.

These are the read-side entry points used by routes and by booking. Expected "no availability" outcomes
(blackout, non-working day, bad date) come back as data; storage errors and malformed configs raise.
"""
import logging
from datetime import date, datetime
from typing import Any, TypedDict

from sqlalchemy.orm import Session

from ayursutra.config import settings
from ayursutra.core.constants import (
    MSG_CONFLICTS_WITH_APPOINTMENT,
    MSG_INVALID_DATE,
    MSG_INVALID_TIME,
    MSG_NOT_WORKING,
    MSG_OUTSIDE_WORKING_HOURS,
)
from ayursutra.core.timerange import TimeRange, iter_days, parse_date, parse_instant
from ayursutra.schemas.availability import AvailabilityConfig
from ayursutra.services.appointment_store import appointment_range, find_active
from ayursutra.services.availability_service import get_or_create_config
from ayursutra.services.slots import Slot, SlotDay, build_day, conflicts
from ayursutra.services.unavailable_date_service import is_blocked

logger = logging.getLogger(__name__)


class SlotCheck(TypedDict):
    is_valid: bool
    reason: str | None


def _booked_ranges(
    db: Session, practitioner_id: str, date_str: str, exclude_appointment_id: int | None
) -> list[TimeRange]:
    return [appointment_range(a) for a in find_active(db, practitioner_id, date_str, exclude_appointment_id)]


def _generate_for(
    db: Session,
    config: AvailabilityConfig,
    day: date,
    exclude_appointment_id: int | None = None,
) -> tuple[SlotDay, list[TimeRange]]:
    date_str = day.isoformat()
    blocked = is_blocked(db, config.practitioner_id, date_str)
    booked = [] if blocked else _booked_ranges(db, config.practitioner_id, date_str, exclude_appointment_id)
    return build_day(config, day, blocked, booked), booked


def generate_slots(
    db: Session,
    practitioner_id: str,
    date_str: str | date,
    exclude_appointment_id: int | None = None,
) -> SlotDay:
    """
    All slots for the practitioner on date_str, booked ones marked available=False.
    An unparseable date gives an empty day with MSG_INVALID_DATE rather than an exception.
    """
    try:
        day = parse_date(date_str)
    except ValueError:
        return {"date": str(date_str), "timezone": settings.default_timezone, "slots": [], "message": MSG_INVALID_DATE}
    config = get_or_create_config(db, practitioner_id)
    result, _ = _generate_for(db, config, day, exclude_appointment_id)
    return result


def validate_slot(
    db: Session,
    practitioner_id: str,
    date_str: str | date,
    start: str | datetime,
    end: str | datetime,
    exclude_appointment_id: int | None = None,
) -> SlotCheck:
    """
    Re-derive the day's slots and look for one with exactly [start, end].
    exclude_appointment_id leaves one appointment out of the booked set (used when rescheduling it).
    """
    try:
        day = parse_date(date_str)
    except ValueError:
        return {"is_valid": False, "reason": MSG_INVALID_DATE}
    try:
        requested = TimeRange(parse_instant(start), parse_instant(end))
    except (TypeError, ValueError):
        return {"is_valid": False, "reason": MSG_INVALID_TIME}

    config = get_or_create_config(db, practitioner_id)
    result, booked = _generate_for(db, config, day, exclude_appointment_id)
    match = next((s for s in result["slots"] if s.start == requested.start and s.end == requested.end), None)

    if match is None:
        if not result["slots"]:
            return {"is_valid": False, "reason": MSG_NOT_WORKING}
        if conflicts(requested, booked, config.buffer_before, config.buffer_after):
            return {"is_valid": False, "reason": MSG_CONFLICTS_WITH_APPOINTMENT}
        return {"is_valid": False, "reason": MSG_OUTSIDE_WORKING_HOURS}
    if not match.available:
        return {"is_valid": False, "reason": match.reason}
    return {"is_valid": True, "reason": None}


def get_next_available_slots(
    db: Session,
    practitioner_id: str,
    from_date: str | date,
    count: int,
    lookahead_days: int | None = None,
) -> list[Slot]:
    """
    Up to `count` available slots from from_date onward, day then time order, each carrying its date.
    Never looks further than lookahead_days (default settings.lookahead_days); a short result is not an error.
    Raises ValueError for an unparseable from_date.
    """
    start_day = parse_date(from_date)
    if count <= 0:
        return []
    ceiling = lookahead_days if lookahead_days is not None else settings.lookahead_days
    config = get_or_create_config(db, practitioner_id)

    found: list[Slot] = []
    for day in iter_days(start_day, ceiling):
        result, _ = _generate_for(db, config, day)
        for slot in result["slots"]:
            if not slot.available:
                continue
            found.append(slot._replace(date=result["date"]))
            if len(found) >= count:
                return found
    logger.debug(
        "Next-slot search for %s from %s found %s/%s within %s days",
        practitioner_id, start_day, len(found), count, ceiling,
    )
    return found


def suggest_slots(db: Session, practitioner_id: str, from_date: str | date) -> list[dict[str, Any]]:
    """Alternatives attached to a rejected booking, JSON-ready."""
    try:
        config = get_or_create_config(db, practitioner_id)
        slots = get_next_available_slots(db, practitioner_id, from_date, settings.suggested_slots_on_failure)
    except ValueError:
        return []
    return [s.to_dict(config.timezone) for s in slots]
