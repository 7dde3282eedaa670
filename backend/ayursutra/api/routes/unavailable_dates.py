"""
Practitioner blackout dates: whole days with no slots regardless of weekly hours or exceptions.

Adding a blackout reports the active appointments already on that day; it does not cancel them.
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ayursutra.api.deps import raise_http
from ayursutra.core.errors import SchedulingError
from ayursutra.core.timerange import parse_date
from ayursutra.db.session import get_db
from ayursutra.services.unavailable_date_service import (
    add_unavailable_date,
    is_blocked,
    list_unavailable_dates,
    remove_unavailable_date,
    remove_unavailable_dates,
    unavailable_date_to_dict,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class AddUnavailableDateRequest(BaseModel):
    date: str
    reason: str = Field("", max_length=200)


class BulkRemoveRequest(BaseModel):
    dates: list[str] = Field(default_factory=list, max_length=366)


@router.get("/practitioners/{practitioner_id}/unavailable-dates")
def get_unavailable_dates(
    practitioner_id: str,
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    try:
        rows = list_unavailable_dates(db, practitioner_id, start_date, end_date)
    except ValueError as e:
        raise_http(e)
    return {"unavailable_dates": [unavailable_date_to_dict(r) for r in rows]}


@router.post("/practitioners/{practitioner_id}/unavailable-dates")
def post_unavailable_date(
    practitioner_id: str,
    body: AddUnavailableDateRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    try:
        result = add_unavailable_date(db, practitioner_id, body.date, body.reason)
    except (SchedulingError, ValueError) as e:
        raise_http(e)
    return {
        "unavailable_date": unavailable_date_to_dict(result["unavailable_date"]),
        "created": result["created"],
        "conflicting_appointments": result["conflicting_appointments"],
    }


@router.delete("/practitioners/{practitioner_id}/unavailable-dates/{date}")
def delete_unavailable_date(practitioner_id: str, date: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        removed = remove_unavailable_date(db, practitioner_id, date)
    except ValueError as e:
        raise_http(e)
    return {"ok": True, "date": date, "removed": removed}


@router.get("/practitioners/{practitioner_id}/unavailable-dates/check/{date}")
def check_unavailable_date(practitioner_id: str, date: str, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        day = parse_date(date).isoformat()
    except ValueError as e:
        raise_http(e)
    return {"date": day, "is_unavailable": is_blocked(db, practitioner_id, day)}


@router.post("/practitioners/{practitioner_id}/unavailable-dates/bulk-remove")
def post_bulk_remove(practitioner_id: str, body: BulkRemoveRequest, db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        result = remove_unavailable_dates(db, practitioner_id, body.dates)
    except ValueError as e:
        raise_http(e)
    return {"ok": bool(result["removed"]), **result}
