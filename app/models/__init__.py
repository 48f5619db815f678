from app.models.user import User
from app.models.availability import AvailabilityCreate, AvailabilityPattern, BreakInterval
from app.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStatus,
    AppointmentUpdate,
)
from app.models.slot import Slot

__all__ = [
    "User",
    "AvailabilityCreate",
    "AvailabilityPattern",
    "BreakInterval",
    "Appointment",
    "AppointmentCreate",
    "AppointmentFilters",
    "AppointmentStatus",
    "AppointmentUpdate",
    "Slot",
]
