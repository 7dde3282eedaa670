"""
Centralized constants for scheduling, validation limits and the scheduler.

Change job IDs, limits or user-facing messages here instead of scattering literals across services and routes.
"""

# Scheduler job IDs (must match ids used in main.py add_job)
APPOINTMENT_EVENT_JOB_ID = "appointment_events"

# Availability settings limits (inclusive)
SLOT_LENGTH_MIN = 15
SLOT_LENGTH_MAX = 240
BUFFER_MIN = 0
BUFFER_MAX = 60

# Next-available search: callers may not ask for more than this many slots at once
NEXT_SLOTS_MAX_COUNT = 50

# Appointment lifecycle
STATUS_REQUESTED = "requested"
STATUS_CONFIRMED = "confirmed"
STATUS_RESCHEDULED = "rescheduled"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
ALL_STATUSES = (STATUS_REQUESTED, STATUS_CONFIRMED, STATUS_RESCHEDULED, STATUS_CANCELLED, STATUS_COMPLETED)
APPOINTMENT_TYPES = ("consultation", "therapy", "follow-up", "emergency")

# Exception record types
EXCEPTION_BLOCK = "block"
EXCEPTION_PARTIAL = "partial"

# User-facing messages for empty days and rejected slots
MSG_NOT_AVAILABLE_ON_DATE = "Practitioner is not available on this date"
MSG_DOES_NOT_WORK_ON_DAY = "Practitioner does not work on this day"
MSG_INVALID_DATE = "Invalid date; expected YYYY-MM-DD"
MSG_SLOT_BOOKED = "Time slot is already booked (conflicts with an existing appointment)"
MSG_OUTSIDE_WORKING_HOURS = "Requested time is outside working hours"
MSG_CONFLICTS_WITH_APPOINTMENT = "Requested time conflicts with an existing appointment"
MSG_NOT_WORKING = "Practitioner is not working on this date"
MSG_SLOT_TAKEN = "This time slot is no longer available. Please choose another slot."
MSG_INVALID_TIME = "Invalid start or end time; expected ISO 8601"
