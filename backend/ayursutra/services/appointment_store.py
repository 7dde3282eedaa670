"""
Booking store: appointment rows and the conflict-checked write path.

Every write that gives an appointment a time range goes through commit_slot(). Within one transaction it
  1. on PostgreSQL, takes a transaction-scoped advisory lock on (practitioner, date), serializing writers
     for that day across all server instances;
  2. re-checks that no other active appointment overlaps the buffer-expanded range;
  3. flushes the insert/update, where the partial unique index on (practitioner_id, slot_start_utc) over
     active statuses rejects a concurrent duplicate on any backend;
  4. writes the outbox event and commits.
A lost race at step 2 or 3 surfaces as SlotConflictError; other storage errors propagate.

Status changes are guarded separately: lifecycle operations read the row with get_appointment(for_update=True)
(a row lock on PostgreSQL) and every UPDATE is versioned, so a transition decided on a status that another
session has since changed raises InvalidTransitionError instead of overwriting it.
"""
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ayursutra.core.constants import MSG_SLOT_TAKEN
from ayursutra.core.errors import AppointmentNotFoundError, InvalidTransitionError, SlotConflictError
from ayursutra.core.timerange import TimeRange, as_utc
from ayursutra.db.tables import ACTIVE_APPOINTMENT_STATUSES
from ayursutra.models.appointment import Appointment
from ayursutra.models.appointment_event import AppointmentEvent

logger = logging.getLogger(__name__)

DOUBLE_BOOKING_INDEX = "uq_appointments_active_practitioner_slot"
# SQLite reports the indexed columns instead of the index name
_SQLITE_DOUBLE_BOOKING_MSG = "appointments.practitioner_id, appointments.slot_start_utc"


def _is_double_booking(exc: IntegrityError) -> bool:
    msg = str(exc.orig)
    return DOUBLE_BOOKING_INDEX in msg or _SQLITE_DOUBLE_BOOKING_MSG in msg


def appointment_range(appt: Appointment) -> TimeRange:
    return TimeRange(as_utc(appt.slot_start_utc), as_utc(appt.slot_end_utc))


def find_active(
    db: Session,
    practitioner_id: str,
    date_str: str,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    """Appointments that hold time for this practitioner on date_str, ordered by start."""
    q = db.query(Appointment).filter(
        Appointment.practitioner_id == practitioner_id,
        Appointment.date == date_str,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
    )
    if exclude_appointment_id is not None:
        q = q.filter(Appointment.id != exclude_appointment_id)
    return q.order_by(Appointment.slot_start_utc.asc()).all()


def _advisory_lock_key(practitioner_id: str, date_str: str) -> int:
    """Deterministic bigint for the PostgreSQL advisory lock (one practitioner-day = one writer at a time)."""
    h = hashlib.sha256(f"{practitioner_id}|{date_str}".encode()).digest()[:8]
    return int.from_bytes(h, "big") % (2**63)


def _lock_practitioner_day(db: Session, practitioner_id: str, date_str: str) -> None:
    if db.get_bind().dialect.name != "postgresql":
        return
    # Waits for the writer in flight; released at commit or rollback
    db.execute(text("SELECT pg_advisory_xact_lock(:k)"), {"k": _advisory_lock_key(practitioner_id, date_str)})


def _has_overlap(
    db: Session,
    practitioner_id: str,
    slot: TimeRange,
    buffer_before: int,
    buffer_after: int,
    exclude_appointment_id: int | None,
) -> bool:
    # Both ranges widened by the same buffers overlap iff the raw ranges are closer than before + after.
    pad = timedelta(minutes=buffer_before + buffer_after)
    q = db.query(Appointment.id).filter(
        Appointment.practitioner_id == practitioner_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        Appointment.slot_start_utc < slot.end + pad,
        Appointment.slot_end_utc > slot.start - pad,
    )
    if exclude_appointment_id is not None:
        q = q.filter(Appointment.id != exclude_appointment_id)
    return q.first() is not None


def record_event(db: Session, appt: Appointment, event_type: str, **extra: Any) -> AppointmentEvent:
    """Queue an outbox row for appt in the current transaction."""
    payload = {
        "status": appt.status,
        "patient_id": appt.patient_id,
        "date": appt.date,
        "slot_start_utc": as_utc(appt.slot_start_utc).isoformat(),
        "slot_end_utc": as_utc(appt.slot_end_utc).isoformat(),
    }
    payload.update(extra)
    event = AppointmentEvent(
        appointment_id=appt.id,
        practitioner_id=appt.practitioner_id,
        event_type=event_type,
        payload=payload,
    )
    db.add(event)
    return event


def commit_slot(
    db: Session,
    appt: Appointment,
    slot: TimeRange,
    buffer_before: int,
    buffer_after: int,
    event_type: str,
    **event_extra: Any,
) -> Appointment:
    """
    Give appt (new or existing) the time range `slot` on appt.date and commit, or raise SlotConflictError.
    The caller has already validated the slot; this closes the gap between that check and the write.
    """
    exclude_id = appt.id  # None for a new appointment
    try:
        _lock_practitioner_day(db, appt.practitioner_id, appt.date)
        if _has_overlap(db, appt.practitioner_id, slot, buffer_before, buffer_after, exclude_id):
            db.rollback()
            logger.warning(
                "Booking conflict (overlap on re-check) for practitioner %s at %s",
                appt.practitioner_id, slot.start.isoformat(),
            )
            raise SlotConflictError(MSG_SLOT_TAKEN)
        appt.slot_start_utc = slot.start
        appt.slot_end_utc = slot.end
        appt.duration = slot.minutes
        if exclude_id is None:
            db.add(appt)
        db.flush()
        record_event(db, appt, event_type, **event_extra)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _is_double_booking(e):
            logger.warning(
                "Booking conflict (unique slot index) for practitioner %s at %s",
                appt.practitioner_id, slot.start.isoformat(),
            )
            raise SlotConflictError(MSG_SLOT_TAKEN) from e
        raise
    except StaleDataError as e:
        raise_stale_transition(db, appt, event_type, e)
    db.refresh(appt)
    return appt


def raise_stale_transition(db: Session, appt: Appointment, target: str, exc: StaleDataError) -> None:
    """Roll back a versioned UPDATE that matched no row and report the status another session committed."""
    db.rollback()
    current = db.query(Appointment.status).filter(Appointment.id == appt.id).scalar()
    logger.warning("Appointment %s changed to %s concurrently; dropped move to %s", appt.id, current, target)
    raise InvalidTransitionError(f"Cannot move {current} appointment {appt.id} to {target}") from exc


def insert_if_available(
    db: Session,
    *,
    practitioner_id: str,
    patient_id: str,
    date_str: str,
    slot: TimeRange,
    buffer_before: int,
    buffer_after: int,
    created_by: str = "patient",
    appointment_type: str = "consultation",
    notes: str = "",
) -> Appointment:
    """Create a requested appointment for slot, or raise SlotConflictError if another booking holds it."""
    appt = Appointment(
        practitioner_id=practitioner_id,
        patient_id=patient_id,
        date=date_str,
        status="requested",
        created_by=created_by,
        type=appointment_type,
        notes=notes or "",
    )
    appt = commit_slot(db, appt, slot, buffer_before, buffer_after, "requested")
    logger.info("Appointment %s requested: practitioner %s, %s", appt.id, practitioner_id, slot.start.isoformat())
    return appt


def get_appointment(db: Session, appointment_id: int, for_update: bool = False) -> Appointment:
    q = db.query(Appointment).filter(Appointment.id == appointment_id)
    if for_update:
        # Fresh read of the row; FOR UPDATE holds other writers until this transaction ends (no-op on SQLite)
        q = q.populate_existing()
        if db.get_bind().dialect.name == "postgresql":
            q = q.with_for_update()
    appt = q.first()
    if appt is None:
        raise AppointmentNotFoundError(f"Appointment {appointment_id} not found")
    return appt


def list_appointments(
    db: Session,
    practitioner_id: str | None = None,
    patient_id: str | None = None,
    date_str: str | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[Appointment]:
    q = db.query(Appointment)
    if practitioner_id:
        q = q.filter(Appointment.practitioner_id == practitioner_id)
    if patient_id:
        q = q.filter(Appointment.patient_id == patient_id)
    if date_str:
        q = q.filter(Appointment.date == date_str)
    if status:
        q = q.filter(Appointment.status == status)
    return q.order_by(Appointment.slot_start_utc.asc()).limit(limit).all()


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def appointment_to_dict(appt: Appointment) -> dict[str, Any]:
    return {
        "id": appt.id,
        "practitioner_id": appt.practitioner_id,
        "patient_id": appt.patient_id,
        "date": appt.date,
        "slot_start_utc": _iso(appt.slot_start_utc),
        "slot_end_utc": _iso(appt.slot_end_utc),
        "duration": appt.duration,
        "status": appt.status,
        "type": appt.type,
        "created_by": appt.created_by,
        "notes": appt.notes or "",
        "created_at": _iso(appt.created_at),
        "confirmed_at": _iso(appt.confirmed_at),
        "cancelled_at": _iso(appt.cancelled_at),
        "completed_at": _iso(appt.completed_at),
    }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
