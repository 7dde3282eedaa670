"""
Bookable slots: one day's slots, the next available ones, and validation of a proposed slot.

Days with no slots by design (blackout, exception block, non-working weekday) answer 200 with an empty list
and a message.
"""
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ayursutra.api.deps import raise_http
from ayursutra.config import settings
from ayursutra.core.constants import NEXT_SLOTS_MAX_COUNT
from ayursutra.core.errors import SchedulingError
from ayursutra.core.timerange import parse_date
from ayursutra.db.session import get_db
from ayursutra.services.availability_service import get_or_create_config
from ayursutra.services.slot_service import generate_slots, get_next_available_slots, validate_slot
from ayursutra.services.slots import slot_day_to_dict

router = APIRouter()
logger = logging.getLogger(__name__)


class ValidateSlotRequest(BaseModel):
    date: str
    start_time: datetime
    end_time: datetime


@router.get("/practitioners/{practitioner_id}/slots")
def get_slots(
    practitioner_id: str,
    date: str = Query(..., description="YYYY-MM-DD"),
    available_only: bool = Query(False),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    try:
        parse_date(date)
        day = generate_slots(db, practitioner_id, date)
    except (SchedulingError, ValueError) as e:
        raise_http(e)
    out = slot_day_to_dict(day)
    if available_only:
        out["slots"] = [s for s in out["slots"] if s["available"]]
    return out


@router.get("/practitioners/{practitioner_id}/slots/next")
def get_next_slots(
    practitioner_id: str,
    from_date: str | None = Query(None, description="YYYY-MM-DD; defaults to today (UTC)"),
    count: int = Query(5, ge=1, le=NEXT_SLOTS_MAX_COUNT),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    start = from_date or datetime.now(timezone.utc).date().isoformat()
    try:
        slots = get_next_available_slots(db, practitioner_id, start, count)
        tz = get_or_create_config(db, practitioner_id).timezone
    except (SchedulingError, ValueError) as e:
        raise_http(e)
    return {
        "from_date": start,
        "lookahead_days": settings.lookahead_days,
        "timezone": tz,
        "slots": [s.to_dict(tz) for s in slots],
    }


@router.post("/practitioners/{practitioner_id}/slots/validate")
def post_validate_slot(
    practitioner_id: str,
    body: ValidateSlotRequest,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    try:
        return dict(validate_slot(db, practitioner_id, body.date, body.start_time, body.end_time))
    except SchedulingError as e:
        raise_http(e)
