from datetime import date, datetime

from app.api.schemas.common import CamelModel, PageMeta
from app.core.timeutils import ClockTime
from app.models.appointment import AppointmentCreate, AppointmentUpdate


class BookAppointmentRequest(CamelModel):
    patient_id: int | None = None  # patients may omit it; defaults to the caller
    provider_id: int
    appointment_date: date
    start_time: ClockTime
    end_time: ClockTime
    duration_minutes: int | None = None
    appointment_type: str
    appointment_mode: str = "in-person"
    reason_for_visit: str
    notes: str | None = None
    timezone: str = "UTC"

    def to_create(self, patient_id: int) -> AppointmentCreate:
        return AppointmentCreate(
            patient_id=patient_id,
            **self.model_dump(exclude={"patient_id"}),
        )


class UpdateAppointmentRequest(CamelModel):
    appointment_date: date | None = None
    start_time: ClockTime | None = None
    end_time: ClockTime | None = None
    appointment_type: str | None = None
    appointment_mode: str | None = None
    reason_for_visit: str | None = None
    notes: str | None = None
    provider_notes: str | None = None

    def to_update(self) -> AppointmentUpdate:
        return AppointmentUpdate(**self.model_dump())


class CancelRequest(CamelModel):
    cancellation_reason: str | None = None
    cancelled_by: str | None = None


class StatusRequest(CamelModel):
    status: str


class AppointmentResponse(CamelModel):
    id: int
    reference: str
    patient_id: int
    provider_id: int
    appointment_date: date
    start_time: ClockTime
    end_time: ClockTime
    duration_minutes: int
    status: str
    appointment_type: str
    appointment_mode: str
    reason_for_visit: str
    notes: str | None = None
    provider_notes: str | None = None
    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    timezone: str
    created_at: datetime
    updated_at: datetime


class AppointmentList(CamelModel):
    items: list[AppointmentResponse]
    pagination: PageMeta
