"""
Booking lifecycle: request, confirm, cancel, complete, reschedule.

Booking and rescheduling validate the slot against freshly generated availability, then write through
appointment_store.commit_slot(), the only path that gives an appointment a time range. A rejected request
carries up to settings.suggested_slots_on_failure alternatives from the requested date onward.

Status changes read the appointment with get_appointment(for_update=True) and commit a versioned UPDATE: if
another session moved the appointment in between (say, cancelled it during a reschedule), the write is
dropped and InvalidTransitionError reports the status that won.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ayursutra.core.constants import (
    APPOINTMENT_TYPES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_REQUESTED,
    STATUS_RESCHEDULED,
)
from ayursutra.core.errors import (
    InvalidTransitionError,
    PractitionerNotFoundError,
    SlotConflictError,
    SlotUnavailableError,
)
from ayursutra.core.timerange import TimeRange, as_utc, parse_date, parse_instant
from ayursutra.models.appointment import Appointment
from ayursutra.services.appointment_store import (
    commit_slot,
    get_appointment,
    insert_if_available,
    raise_stale_transition,
    record_event,
    utcnow,
)
from ayursutra.services.availability_service import get_or_create_config
from ayursutra.services.slot_service import suggest_slots, validate_slot

logger = logging.getLogger(__name__)

# status -> statuses it may move to
TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_REQUESTED: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_RESCHEDULED}),
    STATUS_CONFIRMED: frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_RESCHEDULED}),
    STATUS_RESCHEDULED: frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_RESCHEDULED}),
    STATUS_CANCELLED: frozenset(),
    STATUS_COMPLETED: frozenset(),
}


def _check_transition(appt: Appointment, target: str) -> None:
    if target not in TRANSITIONS.get(appt.status, frozenset()):
        raise InvalidTransitionError(f"Cannot move {appt.status} appointment {appt.id} to {target}")


def _append_note(appt: Appointment, note: str) -> None:
    appt.notes = f"{appt.notes} | {note}" if appt.notes else note


def _requested_range(start: str | datetime, duration: int) -> TimeRange:
    begin = parse_instant(start)
    return TimeRange(begin, begin + timedelta(minutes=duration))


def book_appointment(
    db: Session,
    practitioner_id: str,
    patient_id: str,
    date_str: str,
    start: str | datetime,
    duration: int | None = None,
    notes: str = "",
    appointment_type: str = "consultation",
    created_by: str = "patient",
) -> Appointment:
    """
    Validate and create a requested appointment.

    Raises ValueError for malformed input, PractitionerNotFoundError for an unknown or deactivated
    practitioner, SlotUnavailableError when the slot is not bookable and SlotConflictError when a
    concurrent booking took it between validation and commit.
    """
    parse_date(date_str)
    if appointment_type not in APPOINTMENT_TYPES:
        raise ValueError(f"Invalid appointment type {appointment_type!r}")
    config = get_or_create_config(db, practitioner_id)
    if not config.persisted:
        raise PractitionerNotFoundError(f"Practitioner {practitioner_id} not found")
    slot = _requested_range(start, duration or config.slot_length)

    check = validate_slot(db, practitioner_id, date_str, slot.start, slot.end)
    if not check["is_valid"]:
        logger.info("Booking rejected for practitioner %s at %s: %s", practitioner_id, slot.start, check["reason"])
        raise SlotUnavailableError(check["reason"], next_available_slots=suggest_slots(db, practitioner_id, date_str))
    try:
        return insert_if_available(
            db,
            practitioner_id=practitioner_id,
            patient_id=patient_id,
            date_str=date_str,
            slot=slot,
            buffer_before=config.buffer_before,
            buffer_after=config.buffer_after,
            created_by=created_by,
            appointment_type=appointment_type,
            notes=notes,
        )
    except SlotConflictError as e:
        e.next_available_slots = suggest_slots(db, practitioner_id, date_str)
        raise


def _set_status(db: Session, appointment_id: int, target: str, note: str | None = None, **stamps: datetime) -> Appointment:
    appt = get_appointment(db, appointment_id, for_update=True)
    _check_transition(appt, target)
    previous = appt.status
    appt.status = target
    for column, value in stamps.items():
        setattr(appt, column, value)
    if note:
        _append_note(appt, note)
    record_event(db, appt, target, previous_status=previous)
    try:
        db.commit()
    except StaleDataError as e:
        raise_stale_transition(db, appt, target, e)
    db.refresh(appt)
    logger.info("Appointment %s %s -> %s", appt.id, previous, target)
    return appt


def confirm_appointment(db: Session, appointment_id: int) -> Appointment:
    return _set_status(db, appointment_id, STATUS_CONFIRMED, confirmed_at=utcnow())


def cancel_appointment(db: Session, appointment_id: int, reason: str | None = None) -> Appointment:
    """Cancel an active appointment; its time becomes bookable again."""
    note = f"Cancelled: {reason}" if reason else "Cancelled"
    return _set_status(db, appointment_id, STATUS_CANCELLED, note=note, cancelled_at=utcnow())


def complete_appointment(
    db: Session,
    appointment_id: int,
    session_notes: str | None = None,
    completion_time: str | datetime | None = None,
) -> Appointment:
    """Mark an appointment completed. completion_time (ISO 8601) defaults to now; session notes are appended."""
    completed_at = parse_instant(completion_time) if completion_time else utcnow()
    note = f"Session notes: {session_notes}" if session_notes else None
    return _set_status(db, appointment_id, STATUS_COMPLETED, note=note, completed_at=completed_at)


def reschedule_appointment(
    db: Session,
    appointment_id: int,
    new_date: str,
    new_start: str | datetime,
    reason: str | None = None,
) -> Appointment:
    """
    Move an active appointment to new_date/new_start, keeping its duration.
    The new slot is validated with the appointment itself left out of the booked set, so moving it
    within its own buffer zone is allowed.
    """
    parse_date(new_date)
    appt = get_appointment(db, appointment_id, for_update=True)
    _check_transition(appt, STATUS_RESCHEDULED)
    slot = _requested_range(new_start, appt.duration)

    check = validate_slot(db, appt.practitioner_id, new_date, slot.start, slot.end, exclude_appointment_id=appt.id)
    if not check["is_valid"]:
        raise SlotUnavailableError(check["reason"], next_available_slots=suggest_slots(db, appt.practitioner_id, new_date))

    config = get_or_create_config(db, appt.practitioner_id)
    previous = {"previous_date": appt.date, "previous_start_utc": as_utc(appt.slot_start_utc).isoformat()}
    practitioner_id = appt.practitioner_id
    appt.date = new_date
    appt.status = STATUS_RESCHEDULED
    _append_note(appt, f"Rescheduled: {reason}" if reason else "Rescheduled")
    try:
        appt = commit_slot(db, appt, slot, config.buffer_before, config.buffer_after, STATUS_RESCHEDULED, **previous)
    except SlotConflictError as e:
        e.next_available_slots = suggest_slots(db, practitioner_id, new_date)
        raise
    logger.info("Appointment %s rescheduled to %s %s", appt.id, new_date, slot.start.isoformat())
    return appt
