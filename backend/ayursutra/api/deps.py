"""Shared route helpers: caller identity and error mapping."""
import logging
from typing import NoReturn

from fastapi import Header, HTTPException, Query

from ayursutra.core.errors import AvailabilityConfigError, SchedulingError, scheduling_error_to_http

logger = logging.getLogger(__name__)


def patient_id_header(
    x_patient_id: str | None = Header(None, alias="X-Patient-Id"),
    patient_id: str | None = Query(None),
) -> str:
    """Patient making the request, from X-Patient-Id header or ?patient_id=. Authentication happens upstream."""
    pid = (x_patient_id or patient_id or "").strip()
    if not pid:
        raise HTTPException(status_code=400, detail={"code": "missing_patient", "message": "X-Patient-Id header is required"})
    return pid


def raise_http(exc: Exception) -> NoReturn:
    """Re-raise a service exception as the matching HTTPException. Anything unexpected propagates (500)."""
    if isinstance(exc, SchedulingError):
        if isinstance(exc, AvailabilityConfigError):
            logger.error("%s", exc.message)
        raise scheduling_error_to_http(exc) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail={"code": "invalid_request", "message": str(exc)}) from exc
    raise exc
