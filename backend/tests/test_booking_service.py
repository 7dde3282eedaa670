"""Tests for booking, the commit-time conflict guard and the appointment lifecycle."""
import threading

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import MONDAY, SUNDAY, TUESDAY, make_practitioner, utc

from ayursutra.core.constants import MSG_SLOT_BOOKED, MSG_SLOT_TAKEN
from ayursutra.core.errors import (
    AppointmentNotFoundError,
    InvalidTransitionError,
    PractitionerNotFoundError,
    SchedulingError,
    SlotConflictError,
    SlotUnavailableError,
)
from ayursutra.core.timerange import TimeRange, parse_instant
from ayursutra.models.appointment import Appointment
from ayursutra.models.appointment_event import AppointmentEvent
from ayursutra.services import appointment_store, booking_service
from ayursutra.services.booking_service import (
    book_appointment,
    cancel_appointment,
    complete_appointment,
    confirm_appointment,
    reschedule_appointment,
)
from ayursutra.services.slot_service import generate_slots, validate_slot


def _slot(date_str: str, start: str, end: str) -> TimeRange:
    return TimeRange(parse_instant(utc(date_str, start)), parse_instant(utc(date_str, end)))


def _events(db, appointment_id: int) -> list[str]:
    rows = (
        db.query(AppointmentEvent)
        .filter(AppointmentEvent.appointment_id == appointment_id)
        .order_by(AppointmentEvent.id.asc())
        .all()
    )
    return [r.event_type for r in rows]


class TestBook:
    def test_book_available_slot(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        assert appt.status == "requested"
        assert appt.duration == 30
        assert appt.date == MONDAY
        assert _events(db, appt.id) == ["requested"]
        slots = {s.start.strftime("%H:%M"): s for s in generate_slots(db, "pr-1", MONDAY)["slots"]}
        assert not slots["10:00"].available

    def test_second_booking_is_a_validation_failure_with_suggestions(self, db):
        make_practitioner(db)
        book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        with pytest.raises(SlotUnavailableError) as exc_info:
            book_appointment(db, "pr-1", "pat-2", MONDAY, utc(MONDAY, "10:00"))
        assert exc_info.value.message == MSG_SLOT_BOOKED
        suggestions = exc_info.value.next_available_slots
        assert len(suggestions) == 3
        assert all(s["available"] for s in suggestions)
        assert "10:00" not in [s["start_local"] for s in suggestions]

    def test_off_grid_start_rejected(self, db):
        make_practitioner(db)
        with pytest.raises(SlotUnavailableError):
            book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:05"))

    def test_day_off_rejected(self, db):
        make_practitioner(db)
        with pytest.raises(SlotUnavailableError):
            book_appointment(db, "pr-1", "pat-1", SUNDAY, utc(SUNDAY, "10:00"))

    def test_malformed_input(self, db):
        make_practitioner(db)
        with pytest.raises(ValueError):
            book_appointment(db, "pr-1", "pat-1", "Monday", utc(MONDAY, "10:00"))
        with pytest.raises(ValueError):
            book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"), appointment_type="massage")

    def test_unknown_practitioner(self, db):
        with pytest.raises(PractitionerNotFoundError):
            book_appointment(db, "ghost", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        assert db.query(Appointment).count() == 0

    def test_deactivated_practitioner(self, db):
        row = make_practitioner(db)
        row.is_active = False
        db.commit()
        with pytest.raises(PractitionerNotFoundError):
            book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))

    def test_conflict_when_validation_raced(self, db, monkeypatch):
        make_practitioner(db)
        book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        # A check that ran before the first booking committed
        monkeypatch.setattr(booking_service, "validate_slot", lambda *a, **kw: {"is_valid": True, "reason": None})
        with pytest.raises(SlotConflictError) as exc_info:
            book_appointment(db, "pr-1", "pat-2", MONDAY, utc(MONDAY, "10:00"))
        assert exc_info.value.message == MSG_SLOT_TAKEN
        assert len(exc_info.value.next_available_slots) == 3
        assert db.query(Appointment).count() == 1


class TestConflictGuard:
    def test_overlap_recheck(self, db):
        make_practitioner(db)
        appointment_store.insert_if_available(
            db, practitioner_id="pr-1", patient_id="pat-1", date_str=MONDAY,
            slot=_slot(MONDAY, "10:00", "10:30"), buffer_before=10, buffer_after=10,
        )
        with pytest.raises(SlotConflictError):
            appointment_store.insert_if_available(
                db, practitioner_id="pr-1", patient_id="pat-2", date_str=MONDAY,
                slot=_slot(MONDAY, "10:35", "11:05"), buffer_before=10, buffer_after=10,
            )

    def test_unique_index_rejects_duplicate_start(self, db, monkeypatch):
        make_practitioner(db)
        appointment_store.insert_if_available(
            db, practitioner_id="pr-1", patient_id="pat-1", date_str=MONDAY,
            slot=_slot(MONDAY, "10:00", "10:30"), buffer_before=10, buffer_after=10,
        )
        monkeypatch.setattr(appointment_store, "_has_overlap", lambda *a, **kw: False)
        with pytest.raises(SlotConflictError):
            appointment_store.insert_if_available(
                db, practitioner_id="pr-1", patient_id="pat-2", date_str=MONDAY,
                slot=_slot(MONDAY, "10:00", "10:30"), buffer_before=10, buffer_after=10,
            )
        assert db.query(Appointment).count() == 1
        assert db.query(AppointmentEvent).count() == 1

    def test_unique_index_ignores_inactive(self, db, monkeypatch):
        make_practitioner(db)
        first = appointment_store.insert_if_available(
            db, practitioner_id="pr-1", patient_id="pat-1", date_str=MONDAY,
            slot=_slot(MONDAY, "10:00", "10:30"), buffer_before=10, buffer_after=10,
        )
        cancel_appointment(db, first.id)
        again = appointment_store.insert_if_available(
            db, practitioner_id="pr-1", patient_id="pat-2", date_str=MONDAY,
            slot=_slot(MONDAY, "10:00", "10:30"), buffer_before=10, buffer_after=10,
        )
        assert again.id != first.id

    def test_concurrent_identical_bookings(self, file_engine, monkeypatch):
        factory = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
        setup = factory()
        make_practitioner(setup)
        setup.close()

        # Both requests pass validation before either writes.
        barrier = threading.Barrier(2, timeout=30)

        def validate_then_wait(db, *args, **kwargs):
            result = validate_slot(db, *args, **kwargs)
            db.commit()
            barrier.wait()
            return result

        monkeypatch.setattr(booking_service, "validate_slot", validate_then_wait)
        outcomes: list = []
        lock = threading.Lock()

        def attempt(patient_id: str):
            db = factory()
            try:
                result = book_appointment(db, "pr-1", patient_id, MONDAY, utc(MONDAY, "10:00"))
                outcome = ("ok", result.id)
            except SchedulingError as e:
                outcome = ("error", e)
            finally:
                db.close()
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=attempt, args=(f"pat-{i}",)) for i in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert len(outcomes) == 2
        successes = [o for o in outcomes if o[0] == "ok"]
        failures = [o[1] for o in outcomes if o[0] == "error"]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], SlotConflictError)

        check = factory()
        try:
            assert check.query(Appointment).count() == 1
        finally:
            check.close()


class TestLifecycle:
    def test_confirm_then_complete(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        appt = confirm_appointment(db, appt.id)
        assert appt.status == "confirmed"
        assert appt.confirmed_at is not None
        appt = complete_appointment(db, appt.id)
        assert appt.status == "completed"
        assert _events(db, appt.id) == ["requested", "confirmed", "completed"]
        # Completed appointments no longer hold the slot
        assert validate_slot(db, "pr-1", MONDAY, utc(MONDAY, "10:00"), utc(MONDAY, "10:30"))["is_valid"]

    def test_cancel_frees_slot_and_appends_reason(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"), notes="First visit")
        appt = cancel_appointment(db, appt.id, "Feeling unwell")
        assert appt.status == "cancelled"
        assert appt.notes == "First visit | Cancelled: Feeling unwell"
        assert book_appointment(db, "pr-1", "pat-2", MONDAY, utc(MONDAY, "10:00")).status == "requested"

    def test_invalid_transitions(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        with pytest.raises(InvalidTransitionError):
            complete_appointment(db, appt.id)
        cancel_appointment(db, appt.id)
        with pytest.raises(InvalidTransitionError):
            confirm_appointment(db, appt.id)
        with pytest.raises(InvalidTransitionError):
            reschedule_appointment(db, appt.id, TUESDAY, utc(TUESDAY, "10:00"))

    def test_missing_appointment(self, db):
        with pytest.raises(AppointmentNotFoundError):
            confirm_appointment(db, 999)

    def test_reschedule_to_another_day(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        moved = reschedule_appointment(db, appt.id, TUESDAY, utc(TUESDAY, "14:10"), "Practitioner travelling")
        assert moved.status == "rescheduled"
        assert moved.date == TUESDAY
        assert moved.duration == 30
        assert "Rescheduled: Practitioner travelling" in moved.notes
        assert _events(db, appt.id) == ["requested", "rescheduled"]
        assert validate_slot(db, "pr-1", MONDAY, utc(MONDAY, "10:00"), utc(MONDAY, "10:30"))["is_valid"]

    def test_reschedule_into_own_buffer(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        # 10:50 touches its own buffer zone; the appointment itself is left out of the check
        moved = reschedule_appointment(db, appt.id, MONDAY, utc(MONDAY, "10:50"))
        assert parse_instant(moved.slot_start_utc.isoformat()) == parse_instant(utc(MONDAY, "10:50"))

    def test_reschedule_onto_booked_slot(self, db):
        make_practitioner(db)
        book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        other = book_appointment(db, "pr-1", "pat-2", MONDAY, utc(MONDAY, "13:20"))
        with pytest.raises(SlotUnavailableError) as exc_info:
            reschedule_appointment(db, other.id, MONDAY, utc(MONDAY, "10:00"))
        assert exc_info.value.next_available_slots
        db.refresh(other)
        assert other.status == "requested"

    def test_complete_with_session_notes_and_time(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"), notes="First visit")
        confirm_appointment(db, appt.id)
        appt = complete_appointment(db, appt.id, "Shirodhara, tolerated well", utc(MONDAY, "10:40"))
        assert appt.notes == "First visit | Session notes: Shirodhara, tolerated well"
        assert parse_instant(appt.completed_at.isoformat()) == parse_instant(utc(MONDAY, "10:40"))

    def test_complete_rejects_bad_completion_time(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        with pytest.raises(ValueError):
            complete_appointment(db, appt.id, completion_time="yesterday")


class TestConcurrentTransitions:
    def test_cancel_during_reschedule_wins(self, db, session_factory, monkeypatch):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        appt_id = appt.id

        # Another session cancels after the reschedule has read the appointment
        def cancel_then_validate(session, *args, **kwargs):
            other = session_factory()
            try:
                cancel_appointment(other, appt_id, "patient cancelled")
            finally:
                other.close()
            return validate_slot(session, *args, **kwargs)

        monkeypatch.setattr(booking_service, "validate_slot", cancel_then_validate)
        with pytest.raises(InvalidTransitionError) as exc_info:
            reschedule_appointment(db, appt_id, TUESDAY, utc(TUESDAY, "14:10"))
        assert "cancelled" in exc_info.value.message

        db.expire_all()
        stored = db.get(Appointment, appt_id)
        assert stored.status == "cancelled"
        assert stored.date == MONDAY
        assert stored.cancelled_at is not None
        assert stored.notes == "Cancelled: patient cancelled"
        assert _events(db, appt_id) == ["requested", "cancelled"]
        assert validate_slot(db, "pr-1", TUESDAY, utc(TUESDAY, "14:10"), utc(TUESDAY, "14:40"))["is_valid"]

    def test_cancel_during_confirm_wins(self, db, session_factory, monkeypatch):
        make_practitioner(db)
        appt_id = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00")).id
        check_transition = booking_service._check_transition

        def cancel_before_confirm(appt, target):
            if target == "confirmed":
                other = session_factory()
                try:
                    cancel_appointment(other, appt_id)
                finally:
                    other.close()
            check_transition(appt, target)

        monkeypatch.setattr(booking_service, "_check_transition", cancel_before_confirm)
        with pytest.raises(InvalidTransitionError):
            confirm_appointment(db, appt_id)

        db.expire_all()
        stored = db.get(Appointment, appt_id)
        assert stored.status == "cancelled"
        assert stored.confirmed_at is None
        assert _events(db, appt_id) == ["requested", "cancelled"]

    def test_each_transition_bumps_version(self, db):
        make_practitioner(db)
        appt = book_appointment(db, "pr-1", "pat-1", MONDAY, utc(MONDAY, "10:00"))
        assert appt.version == 1
        appt = confirm_appointment(db, appt.id)
        appt = reschedule_appointment(db, appt.id, TUESDAY, utc(TUESDAY, "10:00"))
        assert appt.version == 3
        assert appt.status == "rescheduled"
