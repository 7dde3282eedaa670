"""
Slot engine: pure functions from (availability config, date, booked ranges) to the day's slots.

Resolution order for a date:
  1. practitioner blackout date            -> no slots, "not available on this date"
  2. exception for the date
       block                               -> no slots, "not available on this date"
       partial with a valid start < end    -> that window replaces weekly hours
       anything else (malformed / unknown) -> ignored, weekly hours apply
  3. weekly hours for the weekday          -> none: no slots, "does not work on this day"

Tiling is greedy from the window start: cursor = start + buffer_before; a slot [cursor, cursor + length]
is emitted while cursor + length + buffer_after <= end; the cursor then advances by
length + buffer_after + buffer_before. No slot ever sticks out of the window.

A slot is booked when its buffer-expanded range strictly overlaps a booked range expanded by the same
buffers. Touching ranges are allowed.
"""
from datetime import date, datetime, timedelta
from typing import Any, Iterable, NamedTuple, TypedDict

from ayursutra.core.constants import (
    EXCEPTION_BLOCK,
    EXCEPTION_PARTIAL,
    MSG_DOES_NOT_WORK_ON_DAY,
    MSG_NOT_AVAILABLE_ON_DATE,
    MSG_SLOT_BOOKED,
)
from ayursutra.core.timerange import TimeRange, get_timezone, is_hhmm, local_window, weekday_index
from ayursutra.schemas.availability import AvailabilityConfig


class Slot(NamedTuple):
    start: datetime
    end: datetime
    duration: int
    available: bool = True
    reason: str | None = None
    date: str | None = None  # set by the next-available search, which spans several days

    @property
    def range(self) -> TimeRange:
        return TimeRange(self.start, self.end)

    def to_dict(self, timezone_name: str | None = None) -> dict[str, Any]:
        row: dict[str, Any] = {
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "duration": self.duration,
            "available": self.available,
            "reason": self.reason,
        }
        if timezone_name:
            tz = get_timezone(timezone_name)
            row["start_local"] = self.start.astimezone(tz).strftime("%H:%M")
            row["end_local"] = self.end.astimezone(tz).strftime("%H:%M")
        if self.date is not None:
            row["date"] = self.date
        return row


class SlotDay(TypedDict, total=False):
    """Result of generating one day. `message` is present only when the day has no slots by design."""

    date: str
    timezone: str
    slots: list[Slot]
    message: str


def partial_window(record: Any) -> tuple[str, str] | None:
    """(start, end) of a well-formed partial exception, else None."""
    if not isinstance(record, dict) or record.get("type") != EXCEPTION_PARTIAL:
        return None
    start, end = record.get("start"), record.get("end")
    if not (is_hhmm(start) and is_hhmm(end)) or start >= end:
        return None
    return start, end


def resolve_window(config: AvailabilityConfig, day: date, blocked: bool) -> tuple[TimeRange | None, str | None]:
    """The day's working window in UTC, or (None, message) when the practitioner has no hours that day."""
    if blocked:
        return None, MSG_NOT_AVAILABLE_ON_DATE

    exception = config.exception_for(day.isoformat())
    if isinstance(exception, dict) and exception.get("type") == EXCEPTION_BLOCK:
        return None, MSG_NOT_AVAILABLE_ON_DATE
    override = partial_window(exception)
    if override is not None:
        return local_window(day, override[0], override[1], config.timezone), None

    hours = config.working_hours(weekday_index(day))
    if hours is None:
        return None, MSG_DOES_NOT_WORK_ON_DAY
    return local_window(day, hours.start, hours.end, config.timezone), None


def tile_window(window: TimeRange, slot_length: int, buffer_before: int, buffer_after: int) -> list[TimeRange]:
    if slot_length <= 0:
        raise ValueError(f"slot_length must be > 0, got {slot_length}")
    length = timedelta(minutes=slot_length)
    after = timedelta(minutes=buffer_after)
    step = length + after + timedelta(minutes=buffer_before)
    cursor = window.start + timedelta(minutes=buffer_before)
    tiles = []
    while cursor + length + after <= window.end:
        tiles.append(TimeRange(cursor, cursor + length))
        cursor += step
    return tiles


def conflicts(candidate: TimeRange, booked: Iterable[TimeRange], buffer_before: int, buffer_after: int) -> bool:
    """True if candidate, widened by the buffers, strictly overlaps any booked range widened the same way."""
    padded = candidate.expand(buffer_before, buffer_after)
    return any(padded.overlaps(b.expand(buffer_before, buffer_after)) for b in booked)


def mark_booked(slots: list[Slot], booked: list[TimeRange], buffer_before: int, buffer_after: int) -> list[Slot]:
    return [
        slot._replace(available=False, reason=MSG_SLOT_BOOKED)
        if conflicts(slot.range, booked, buffer_before, buffer_after)
        else slot
        for slot in slots
    ]


def build_day(config: AvailabilityConfig, day: date, blocked: bool, booked: list[TimeRange]) -> SlotDay:
    """All slots for `day` in chronological order, available and booked alike."""
    result: SlotDay = {"date": day.isoformat(), "timezone": config.timezone}
    window, message = resolve_window(config, day, blocked)
    if window is None:
        result["slots"] = []
        result["message"] = message
        return result
    tiles = tile_window(window, config.slot_length, config.buffer_before, config.buffer_after)
    slots = [Slot(t.start, t.end, config.slot_length) for t in tiles]
    result["slots"] = mark_booked(slots, booked, config.buffer_before, config.buffer_after)
    return result


def slot_day_to_dict(day: SlotDay) -> dict[str, Any]:
    """JSON-ready form of a SlotDay."""
    out: dict[str, Any] = {
        "date": day["date"],
        "timezone": day["timezone"],
        "slots": [s.to_dict(day["timezone"]) for s in day["slots"]],
    }
    if "message" in day:
        out["message"] = day["message"]
    return out
