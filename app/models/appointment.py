import secrets
import time as clock
from datetime import date, datetime, time
from enum import Enum

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    IN_EXAM = "in-exam"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# Statuses that no longer hold the provider's time
RELEASED_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})
TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

APPOINTMENT_TYPES = ("consultation", "follow-up", "emergency", "routine", "specialist")
APPOINTMENT_MODES = ("in-person", "video-call", "home")
CANCELLED_BY = ("patient", "provider", "system")


def new_reference() -> str:
    """Human-readable booking code, e.g. APT-1767772800000-3FA9C1."""
    return f"APT-{int(clock.time() * 1000)}-{secrets.token_hex(3)}".upper()


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    __table_args__ = (
        # Backstop for the booking lock: two active appointments can't share a start
        Index(
            "uq_appointments_provider_start_active",
            "provider_id",
            "appointment_date",
            "start_time",
            unique=True,
            sqlite_where=text("status NOT IN ('cancelled', 'no-show')"),
            postgresql_where=text("status NOT IN ('cancelled', 'no-show')"),
        ),
        Index("ix_appointments_provider_date", "provider_id", "appointment_date"),
        Index("ix_appointments_patient_date", "patient_id", "appointment_date"),
    )

    id: int | None = Field(default=None, primary_key=True)
    reference: str = Field(default_factory=new_reference, unique=True, index=True)
    patient_id: int = Field(foreign_key="users.id", index=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    appointment_date: date = Field(index=True)
    start_time: time
    end_time: time
    duration_minutes: int
    status: str = Field(default=AppointmentStatus.SCHEDULED.value, index=True)
    appointment_type: str
    appointment_mode: str = "in-person"
    reason_for_visit: str = Field(max_length=500)
    notes: str | None = Field(default=None, max_length=1000)
    provider_notes: str | None = Field(default=None, max_length=1000)
    cancellation_reason: str | None = Field(default=None, max_length=500)
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)


class AppointmentCreate(SQLModel):
    patient_id: int
    provider_id: int
    appointment_date: date
    start_time: time
    end_time: time
    duration_minutes: int | None = None  # derived from start/end when omitted
    appointment_type: str
    appointment_mode: str = "in-person"
    reason_for_visit: str
    notes: str | None = None
    timezone: str = "UTC"


class AppointmentUpdate(SQLModel):
    appointment_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    appointment_type: str | None = None
    appointment_mode: str | None = None
    reason_for_visit: str | None = None
    notes: str | None = None
    provider_notes: str | None = None


class AppointmentFilters(SQLModel):
    provider_id: int | None = None
    patient_id: int | None = None
    status: str | None = None
    appointment_type: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    search: str | None = None
    page: int = 1
    limit: int = 10
