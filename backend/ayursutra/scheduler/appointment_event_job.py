"""
Dispatch appointment lifecycle events: on every tick, take unprocessed appointment_events rows oldest first,
hand each to the dispatcher and stamp processed_at.

The job keeps nothing in memory between ticks; the table is the queue. Rows are claimed with
FOR UPDATE SKIP LOCKED on PostgreSQL so several app instances can run the job side by side.
An event whose dispatch fails stays unprocessed and is retried on the next tick.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from ayursutra.config import settings
from ayursutra.db.session import SessionLocal
from ayursutra.models.appointment_event import AppointmentEvent

logger = logging.getLogger(__name__)


def dispatch_event(event: AppointmentEvent) -> None:
    """Deliver one event. Notification rendering and delivery live elsewhere; this records the hand-off."""
    payload = event.payload or {}
    logger.info(
        "Appointment event %s: appointment %s (practitioner %s, patient %s) %s on %s at %s",
        event.id,
        event.appointment_id,
        event.practitioner_id,
        payload.get("patient_id"),
        event.event_type,
        payload.get("date"),
        payload.get("slot_start_utc"),
    )


def _claim_pending(db: Session, limit: int) -> list[AppointmentEvent]:
    q = (
        db.query(AppointmentEvent)
        .filter(AppointmentEvent.processed_at.is_(None))
        .order_by(AppointmentEvent.created_at.asc(), AppointmentEvent.id.asc())
        .limit(limit)
    )
    if db.get_bind().dialect.name == "postgresql":
        q = q.with_for_update(skip_locked=True)
    return q.all()


def run_appointment_event_job(
    session_factory: Callable[[], Session] = SessionLocal,
    dispatcher: Callable[[AppointmentEvent], None] = dispatch_event,
) -> int:
    """One tick. Returns the number of events dispatched."""
    db = session_factory()
    try:
        pending = _claim_pending(db, settings.event_batch_size)
        if not pending:
            return 0
        dispatched = 0
        for event in pending:
            try:
                dispatcher(event)
            except Exception as e:
                logger.warning("Appointment event %s dispatch failed (will retry): %s", event.id, e, exc_info=True)
                continue
            event.processed_at = datetime.now(timezone.utc)
            dispatched += 1
        db.commit()
        logger.info("Appointment event job: dispatched %s/%s events", dispatched, len(pending))
        return dispatched
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
