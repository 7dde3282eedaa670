"""
Appointments: book, list, and move through the lifecycle (confirm, cancel, complete, reschedule).

A booking for an unknown practitioner is 404. A rejected booking answers 422 (slot_unavailable: the time is
not bookable) or 409 (slot_conflict: another booking committed first); both carry next_available_slots.
A transition that lost to a concurrent one (e.g. cancelled meanwhile) is 400 invalid_transition.
"""
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ayursutra.api.deps import patient_id_header, raise_http
from ayursutra.core.constants import ALL_STATUSES, SLOT_LENGTH_MAX, SLOT_LENGTH_MIN
from ayursutra.core.errors import SchedulingError
from ayursutra.db.session import get_db
from ayursutra.services.appointment_store import appointment_to_dict, get_appointment, list_appointments
from ayursutra.services.booking_service import (
    book_appointment,
    cancel_appointment,
    complete_appointment,
    confirm_appointment,
    reschedule_appointment,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class BookAppointmentRequest(BaseModel):
    practitioner_id: str = Field(..., min_length=1)
    date: str
    slot_start_utc: datetime
    duration: int | None = Field(None, ge=SLOT_LENGTH_MIN, le=SLOT_LENGTH_MAX)
    type: str = "consultation"
    notes: str = Field("", max_length=500)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=200)


class CompleteRequest(BaseModel):
    session_notes: str | None = Field(None, max_length=2000)
    completion_time: datetime | None = None


class RescheduleRequest(BaseModel):
    new_date: str
    new_slot_start_utc: datetime
    reason: str | None = Field(None, max_length=200)


@router.post("/appointments", status_code=201)
def post_appointment(
    body: BookAppointmentRequest,
    db: Session = Depends(get_db),
    patient_id: str = Depends(patient_id_header),
) -> dict[str, Any]:
    try:
        appt = book_appointment(
            db,
            practitioner_id=body.practitioner_id,
            patient_id=patient_id,
            date_str=body.date,
            start=body.slot_start_utc,
            duration=body.duration,
            notes=body.notes,
            appointment_type=body.type,
        )
    except (SchedulingError, ValueError) as e:
        raise_http(e)
    return appointment_to_dict(appt)


@router.get("/appointments")
def get_appointments(
    db: Session = Depends(get_db),
    practitioner_id: str | None = Query(None),
    patient_id: str | None = Query(None),
    date: str | None = Query(None),
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
) -> dict[str, Any]:
    if status and status not in ALL_STATUSES:
        raise_http(ValueError(f"Invalid status. Valid values: {', '.join(ALL_STATUSES)}"))
    rows = list_appointments(db, practitioner_id, patient_id, date, status, limit)
    return {"appointments": [appointment_to_dict(a) for a in rows]}


@router.get("/appointments/{appointment_id}")
def get_one_appointment(appointment_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return appointment_to_dict(get_appointment(db, appointment_id))
    except SchedulingError as e:
        raise_http(e)


@router.post("/appointments/{appointment_id}/confirm")
def post_confirm(appointment_id: int, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return appointment_to_dict(confirm_appointment(db, appointment_id))
    except SchedulingError as e:
        raise_http(e)


@router.post("/appointments/{appointment_id}/cancel")
def post_cancel(appointment_id: int, body: CancelRequest | None = None, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        return appointment_to_dict(cancel_appointment(db, appointment_id, body.reason if body else None))
    except SchedulingError as e:
        raise_http(e)


@router.post("/appointments/{appointment_id}/complete")
def post_complete(appointment_id: int, body: CompleteRequest | None = None, db: Session = Depends(get_db)) -> dict[str, Any]:
    body = body or CompleteRequest()
    try:
        appt = complete_appointment(db, appointment_id, body.session_notes, body.completion_time)
    except SchedulingError as e:
        raise_http(e)
    return appointment_to_dict(appt)


@router.post("/appointments/{appointment_id}/reschedule")
def post_reschedule(appointment_id: int, body: RescheduleRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        appt = reschedule_appointment(db, appointment_id, body.new_date, body.new_slot_start_utc, body.reason)
    except (SchedulingError, ValueError) as e:
        raise_http(e)
    return appointment_to_dict(appt)
