# Appointments domain module
from app.domain.appointments.models import Appointment, AppointmentStatus
from app.domain.appointments.availability import (
    AvailabilityResolver,
    SlotGrid,
    SlotPolicy,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AvailabilityResolver",
    "SlotGrid",
    "SlotPolicy",
]
