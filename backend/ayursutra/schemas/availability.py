"""Availability configuration: validated domain object built from a practitioner_availability row."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ayursutra.core.constants import (
    BUFFER_MAX,
    BUFFER_MIN,
    EXCEPTION_BLOCK,
    EXCEPTION_PARTIAL,
    SLOT_LENGTH_MAX,
    SLOT_LENGTH_MIN,
)
from ayursutra.core.timerange import get_timezone, is_hhmm, parse_date


class WorkingHours(BaseModel):
    """Local time-of-day window for one weekday. enabled=False is the same as no entry."""

    model_config = ConfigDict(frozen=True)

    start: str
    end: str
    enabled: bool = True

    @field_validator("start", "end")
    @classmethod
    def hhmm(cls, v: str) -> str:
        if not is_hhmm(v):
            raise ValueError(f"time must be HH:MM, got {v!r}")
        return v

    @model_validator(mode="after")
    def start_before_end(self) -> "WorkingHours":
        if self.start >= self.end:
            raise ValueError(f"start ({self.start}) must be before end ({self.end})")
        return self


class AvailabilityException(BaseModel):
    """Date-specific override as accepted from practitioners: a full block or partial hours."""

    type: Literal["block", "partial"]
    start: str | None = None
    end: str | None = None

    @model_validator(mode="after")
    def partial_needs_window(self) -> "AvailabilityException":
        if self.type == EXCEPTION_PARTIAL:
            if not (is_hhmm(self.start) and is_hhmm(self.end)):
                raise ValueError("partial exception needs start and end as HH:MM")
            if self.start >= self.end:
                raise ValueError(f"start ({self.start}) must be before end ({self.end})")
        return self

    def to_record(self) -> dict[str, Any]:
        if self.type == EXCEPTION_BLOCK:
            return {"type": EXCEPTION_BLOCK}
        return {"type": EXCEPTION_PARTIAL, "start": self.start, "end": self.end}


class AvailabilityConfig(BaseModel):
    """
    A practitioner's effective schedule settings.

    weekly_hours is keyed 0=Sunday..6=Saturday. exceptions are kept as stored (plain dicts): a malformed
    or unknown exception is not an error, the generator falls back to weekly hours for that date.
    persisted=False marks the stand-in config returned for unknown practitioners.
    """

    model_config = ConfigDict(frozen=True)

    practitioner_id: str
    slot_length: int = Field(gt=0)
    buffer_before: int = Field(ge=0)
    buffer_after: int = Field(ge=0)
    timezone: str
    weekly_hours: dict[int, WorkingHours | None] = Field(default_factory=dict)
    exceptions: dict[str, Any] = Field(default_factory=dict)
    persisted: bool = True

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        get_timezone(v)
        return v

    @field_validator("weekly_hours")
    @classmethod
    def weekday_keys(cls, v: dict[int, WorkingHours | None]) -> dict[int, WorkingHours | None]:
        bad = [k for k in v if not 0 <= k <= 6]
        if bad:
            raise ValueError(f"weekday keys must be 0..6, got {bad}")
        return v

    def working_hours(self, weekday: int) -> WorkingHours | None:
        hours = self.weekly_hours.get(weekday)
        if hours is None or not hours.enabled:
            return None
        return hours

    def exception_for(self, date_str: str) -> Any:
        return self.exceptions.get(date_str)


class AvailabilityUpdate(BaseModel):
    """Partial update of availability settings. Omitted fields keep their stored value."""

    slot_length: int | None = Field(None, ge=SLOT_LENGTH_MIN, le=SLOT_LENGTH_MAX)
    buffer_before: int | None = Field(None, ge=BUFFER_MIN, le=BUFFER_MAX)
    buffer_after: int | None = Field(None, ge=BUFFER_MIN, le=BUFFER_MAX)
    timezone: str | None = None
    weekly_hours: dict[int, WorkingHours | None] | None = None
    exceptions: dict[str, AvailabilityException] | None = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str | None) -> str | None:
        if v is not None:
            get_timezone(v)
        return v

    @field_validator("weekly_hours")
    @classmethod
    def weekday_keys(cls, v):
        if v is not None:
            bad = [k for k in v if not 0 <= k <= 6]
            if bad:
                raise ValueError(f"weekday keys must be 0..6, got {bad}")
        return v

    @field_validator("exceptions")
    @classmethod
    def exception_dates(cls, v):
        if v is not None:
            for key in v:
                parse_date(key)
        return v
