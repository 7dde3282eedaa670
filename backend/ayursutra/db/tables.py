"""
Single source of truth for database tables that exist after migrations.

Use these names when writing raw SQL (e.g. TRUNCATE). alembic/env.py asserts the models match.
"""
ALL_TABLE_NAMES = (
    "practitioners",
    "practitioner_availability",
    "unavailable_dates",
    "appointments",
    "appointment_events",
)

# Statuses that still reserve a practitioner's time range. Mirrored by the partial unique index
# uq_appointments_active_practitioner_slot (migration 001).
ACTIVE_APPOINTMENT_STATUSES = ("requested", "confirmed", "rescheduled")
