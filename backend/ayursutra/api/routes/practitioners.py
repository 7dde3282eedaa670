"""
Practitioner registry and availability settings.

Availability is read with get-or-create semantics: the first read for a registered practitioner stores the
default schedule. Exceptions override one date (block the day or replace its hours).
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ayursutra.api.deps import raise_http
from ayursutra.core.errors import SchedulingError
from ayursutra.db.session import get_db
from ayursutra.schemas.availability import AvailabilityException, AvailabilityUpdate
from ayursutra.services.availability_service import (
    config_to_dict,
    get_or_create_config,
    remove_exception,
    set_exception,
    update_config,
)
from ayursutra.services.practitioner_service import (
    create_practitioner,
    get_practitioner,
    list_practitioners,
    practitioner_to_dict,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class CreatePractitionerRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    specialization: str | None = Field(None, max_length=128)


# --- Registry ---


@router.get("/practitioners")
def get_practitioners(
    db: Session = Depends(get_db),
    active_only: bool = Query(True),
) -> dict[str, Any]:
    return {"practitioners": [practitioner_to_dict(p) for p in list_practitioners(db, active_only)]}


@router.post("/practitioners", status_code=201)
def post_practitioner(body: CreatePractitionerRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        row = create_practitioner(db, body.id, body.name, body.specialization)
    except ValueError as e:
        raise_http(e)
    return practitioner_to_dict(row)


# --- Availability settings ---


@router.get("/practitioners/{practitioner_id}/availability")
def get_availability(practitioner_id: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Effective schedule settings; stores the defaults on first read."""
    try:
        get_practitioner(db, practitioner_id)
        return config_to_dict(get_or_create_config(db, practitioner_id))
    except SchedulingError as e:
        raise_http(e)


@router.put("/practitioners/{practitioner_id}/availability")
def put_availability(
    practitioner_id: str,
    body: AvailabilityUpdate,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Partial update: only the fields present in the body change. weekly_hours/exceptions are replaced whole."""
    try:
        return config_to_dict(update_config(db, practitioner_id, body))
    except SchedulingError as e:
        raise_http(e)


@router.put("/practitioners/{practitioner_id}/availability/exceptions/{date}")
def put_exception(
    practitioner_id: str,
    date: str,
    body: AvailabilityException,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    try:
        return config_to_dict(set_exception(db, practitioner_id, date, body))
    except (SchedulingError, ValueError) as e:
        raise_http(e)


@router.delete("/practitioners/{practitioner_id}/availability/exceptions/{date}")
def delete_exception(practitioner_id: str, date: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        removed = remove_exception(db, practitioner_id, date)
    except SchedulingError as e:
        raise_http(e)
    return {"ok": True, "date": date, "removed": removed}
