"""
Centralized error handling for scheduling failures.

Services raise the exceptions below; routes turn them into HTTP responses with scheduling_error_to_http().
A rejected booking is one of two distinct kinds so clients can react differently:
  - SlotUnavailableError: the requested time was never bookable (or was already taken when checked).
    Re-prompt the user for another slot.
  - SlotConflictError: the time was valid when checked but a concurrent booking committed first.
    Retrying the same slot will fail again.
Storage faults are not wrapped here; they propagate and surface as 500.
"""
from __future__ import annotations

from typing import Any

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Status codes for known error categories
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_UNPROCESSABLE = 422
STATUS_INTERNAL_ERROR = 500


class SchedulingError(Exception):
    """Base for expected scheduling failures. `code` is the machine-readable error kind."""

    code = "scheduling_error"

    def __init__(self, message: str, *, next_available_slots: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.next_available_slots = next_available_slots


class SlotUnavailableError(SchedulingError):
    code = "slot_unavailable"


class SlotConflictError(SchedulingError):
    code = "slot_conflict"


class AppointmentNotFoundError(SchedulingError):
    code = "not_found"


class PractitionerNotFoundError(SchedulingError):
    code = "practitioner_not_found"


class InvalidTransitionError(SchedulingError):
    code = "invalid_transition"


class AvailabilityConfigError(SchedulingError):
    """Stored availability config cannot be interpreted. Fatal for the request: never read as 'available'."""

    code = "availability_config_error"


# ---------------------------------------------------------------------------
# Error rules: (exception type, status_code). First match wins, so subclasses go first.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

SCHEDULING_ERROR_RULES: list[tuple[type[SchedulingError], int]] = [
    (SlotConflictError, STATUS_CONFLICT),
    (SlotUnavailableError, STATUS_UNPROCESSABLE),
    (AppointmentNotFoundError, STATUS_NOT_FOUND),
    (PractitionerNotFoundError, STATUS_NOT_FOUND),
    (InvalidTransitionError, STATUS_BAD_REQUEST),
    (AvailabilityConfigError, STATUS_INTERNAL_ERROR),
]


def scheduling_error_to_http(exc: SchedulingError) -> HTTPException:
    """
    Map a SchedulingError into an HTTPException with a structured detail:
    {"code": ..., "message": ..., "next_available_slots": [...]} (the last key only when suggestions exist).
    """
    detail: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.next_available_slots is not None:
        detail["next_available_slots"] = exc.next_available_slots
    for exc_type, status_code in SCHEDULING_ERROR_RULES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=detail)
