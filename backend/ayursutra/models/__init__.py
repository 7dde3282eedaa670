from ayursutra.models.appointment import Appointment
from ayursutra.models.appointment_event import AppointmentEvent
from ayursutra.models.practitioner import Practitioner
from ayursutra.models.practitioner_availability import PractitionerAvailability
from ayursutra.models.unavailable_date import UnavailableDate

__all__ = [
    "Appointment",
    "AppointmentEvent",
    "Practitioner",
    "PractitionerAvailability",
    "UnavailableDate",
]
