"""Practitioner registry: create and list the practitioners whose schedules this service manages."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ayursutra.core.errors import PractitionerNotFoundError
from ayursutra.models.practitioner import Practitioner

logger = logging.getLogger(__name__)


def create_practitioner(db: Session, practitioner_id: str, name: str, specialization: str | None = None) -> Practitioner:
    """Register a practitioner. Raises ValueError if the id is taken."""
    row = Practitioner(id=practitioner_id.strip(), name=name.strip(), specialization=specialization)
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValueError(f"Practitioner {practitioner_id} already exists") from e
    db.refresh(row)
    logger.info("Registered practitioner %s", row.id)
    return row


def get_practitioner(db: Session, practitioner_id: str) -> Practitioner:
    row = db.query(Practitioner).filter(Practitioner.id == practitioner_id).first()
    if row is None:
        raise PractitionerNotFoundError(f"Practitioner {practitioner_id} not found")
    return row


def list_practitioners(db: Session, active_only: bool = True) -> list[Practitioner]:
    q = db.query(Practitioner)
    if active_only:
        q = q.filter(Practitioner.is_active.is_(True))
    return q.order_by(Practitioner.name.asc()).all()


def practitioner_to_dict(row: Practitioner) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "specialization": row.specialization,
        "is_active": row.is_active,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }
