"""
Availability store: practitioner schedule settings.

get_or_create_config() is the only read path. It materializes the default row for a known practitioner
on first access (explicit upsert: of two concurrent first reads, the insert that loses on the unique
practitioner_id re-reads the winner's row). Unknown or deactivated practitioner ids get a non-persisted config with no
working hours, so slot generation answers "does not work on this day" instead of failing.
"""
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ayursutra.config import settings
from ayursutra.core.errors import AvailabilityConfigError, PractitionerNotFoundError
from ayursutra.core.timerange import parse_date
from ayursutra.models.practitioner import Practitioner
from ayursutra.models.practitioner_availability import PractitionerAvailability
from ayursutra.schemas.availability import AvailabilityConfig, AvailabilityException, AvailabilityUpdate

logger = logging.getLogger(__name__)


def _default_row(practitioner_id: str) -> PractitionerAvailability:
    return PractitionerAvailability(
        practitioner_id=practitioner_id,
        slot_length=settings.default_slot_length,
        buffer_before=settings.default_buffer_before,
        buffer_after=settings.default_buffer_after,
        timezone=settings.default_timezone,
        weekly_hours={str(k): dict(v) for k, v in settings.default_weekly_hours.items()},
        exceptions={},
    )


def _to_config(row: PractitionerAvailability) -> AvailabilityConfig:
    try:
        return AvailabilityConfig(
            practitioner_id=row.practitioner_id,
            slot_length=row.slot_length,
            buffer_before=row.buffer_before,
            buffer_after=row.buffer_after,
            timezone=row.timezone,
            weekly_hours=row.weekly_hours or {},
            exceptions=row.exceptions if isinstance(row.exceptions, dict) else {},
        )
    except ValidationError as e:
        raise AvailabilityConfigError(
            f"Availability settings for practitioner {row.practitioner_id} are malformed: {e.errors()[0]['msg']}"
        ) from e


def _unknown_practitioner_config(practitioner_id: str) -> AvailabilityConfig:
    return AvailabilityConfig(
        practitioner_id=practitioner_id,
        slot_length=settings.default_slot_length,
        buffer_before=settings.default_buffer_before,
        buffer_after=settings.default_buffer_after,
        timezone=settings.default_timezone,
        weekly_hours={},
        exceptions={},
        persisted=False,
    )


def practitioner_exists(db: Session, practitioner_id: str) -> bool:
    """True for a registered, active practitioner. Deactivated practitioners are treated as unknown."""
    return (
        db.query(Practitioner.id)
        .filter(Practitioner.id == practitioner_id, Practitioner.is_active.is_(True))
        .first()
        is not None
    )


def get_or_create_row(db: Session, practitioner_id: str) -> PractitionerAvailability | None:
    """Stored row for an active practitioner, creating the default one if missing. None if unknown or deactivated."""
    if not practitioner_exists(db, practitioner_id):
        return None
    row = db.query(PractitionerAvailability).filter(PractitionerAvailability.practitioner_id == practitioner_id).first()
    if row is not None:
        return row
    row = _default_row(practitioner_id)
    db.add(row)
    try:
        db.commit()
        logger.info("Materialized default availability for practitioner %s", practitioner_id)
    except IntegrityError:
        # Concurrent first read created it; use theirs.
        db.rollback()
        row = (
            db.query(PractitionerAvailability)
            .filter(PractitionerAvailability.practitioner_id == practitioner_id)
            .one()
        )
    return row


def get_or_create_config(db: Session, practitioner_id: str) -> AvailabilityConfig:
    """Never raises for 'not found'. Raises AvailabilityConfigError if the stored settings are malformed."""
    row = get_or_create_row(db, practitioner_id)
    if row is None:
        logger.debug("No practitioner %s; using empty schedule", practitioner_id)
        return _unknown_practitioner_config(practitioner_id)
    return _to_config(row)


def _require_row(db: Session, practitioner_id: str) -> PractitionerAvailability:
    row = get_or_create_row(db, practitioner_id)
    if row is None:
        raise PractitionerNotFoundError(f"Practitioner {practitioner_id} not found")
    return row


def update_config(db: Session, practitioner_id: str, changes: AvailabilityUpdate) -> AvailabilityConfig:
    """Apply a validated partial update. Replaces weekly_hours / exceptions wholesale when given."""
    row = _require_row(db, practitioner_id)
    if changes.slot_length is not None:
        row.slot_length = changes.slot_length
    if changes.buffer_before is not None:
        row.buffer_before = changes.buffer_before
    if changes.buffer_after is not None:
        row.buffer_after = changes.buffer_after
    if changes.timezone is not None:
        row.timezone = changes.timezone
    if changes.weekly_hours is not None:
        row.weekly_hours = {
            str(day): hours.model_dump() if hours is not None else None
            for day, hours in changes.weekly_hours.items()
        }
    if changes.exceptions is not None:
        row.exceptions = {day: exc.to_record() for day, exc in changes.exceptions.items()}
    db.commit()
    db.refresh(row)
    logger.info("Updated availability for practitioner %s", practitioner_id)
    return _to_config(row)


def set_exception(db: Session, practitioner_id: str, date_str: str, exception: AvailabilityException) -> AvailabilityConfig:
    parse_date(date_str)
    row = _require_row(db, practitioner_id)
    # Reassign (not mutate) so the JSON column is flagged dirty.
    exceptions = dict(row.exceptions or {})
    exceptions[date_str] = exception.to_record()
    row.exceptions = exceptions
    db.commit()
    db.refresh(row)
    logger.info("Set %s exception on %s for practitioner %s", exception.type, date_str, practitioner_id)
    return _to_config(row)


def remove_exception(db: Session, practitioner_id: str, date_str: str) -> bool:
    """Remove the exception for date_str. Returns False if there was none."""
    row = _require_row(db, practitioner_id)
    exceptions = dict(row.exceptions or {})
    if date_str not in exceptions:
        return False
    del exceptions[date_str]
    row.exceptions = exceptions
    db.commit()
    return True


def config_to_dict(config: AvailabilityConfig) -> dict[str, Any]:
    return {
        "practitioner_id": config.practitioner_id,
        "slot_length": config.slot_length,
        "buffer_before": config.buffer_before,
        "buffer_after": config.buffer_after,
        "timezone": config.timezone,
        "weekly_hours": {
            str(day): hours.model_dump() if hours is not None else None
            for day, hours in sorted(config.weekly_hours.items())
        },
        "exceptions": dict(sorted(config.exceptions.items())),
    }
