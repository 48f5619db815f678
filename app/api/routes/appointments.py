from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, get_current_caller, get_session, require_roles
from app.api.schemas.appointment import (
    AppointmentList,
    AppointmentResponse,
    BookAppointmentRequest,
    CancelRequest,
    StatusRequest,
    UpdateAppointmentRequest,
)
from app.api.schemas.common import PageMeta
from app.core.config import settings
from app.core.errors import Forbidden, ValidationError
from app.models.appointment import Appointment, AppointmentFilters, AppointmentStatus
from app.services.appointment_service import (
    advance_appointment,
    book_appointment,
    cancel_appointment,
    get_appointment,
    query_appointments,
    update_appointment,
)

router = APIRouter(prefix="/appointments", tags=["appointments"])

clinician = require_roles("provider", "admin")


def _ensure_party(caller: Caller, appointment: Appointment) -> None:
    """Patients see their own appointments, providers their own schedule."""
    if caller.is_admin:
        return
    if caller.role == "patient" and appointment.patient_id == caller.id:
        return
    if caller.role == "provider" and appointment.provider_id == caller.id:
        return
    raise Forbidden("Not allowed to access this appointment", appointment_id=appointment.id)


async def _load_for(session: AsyncSession, caller: Caller, appointment_id: int) -> Appointment:
    appointment = await get_appointment(session, appointment_id)
    _ensure_party(caller, appointment)
    return appointment


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def book(
    body: BookAppointmentRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentResponse:
    if caller.role == "patient":
        if body.patient_id is not None and body.patient_id != caller.id:
            raise Forbidden("Patients can only book for themselves", field="patient_id")
        patient_id = caller.id
    else:
        if body.patient_id is None:
            raise ValidationError("patient_id is required", field="patient_id")
        if caller.role == "provider" and body.provider_id != caller.id:
            raise Forbidden("Providers can only book on their own schedule", field="provider_id")
        patient_id = body.patient_id
    appointment = await book_appointment(session, body.to_create(patient_id))
    return AppointmentResponse.model_validate(appointment)


@router.get("", response_model=AppointmentList)
async def list_appointments(
    provider_id: int | None = Query(None, alias="providerId"),
    patient_id: int | None = Query(None, alias="patientId"),
    status_filter: str | None = Query(None, alias="status"),
    appointment_type: str | None = Query(None, alias="appointmentType"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    search: str | None = Query(None),
    page: int = Query(1),
    limit: int = Query(settings.default_page_size),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentList:
    # Non-admins are pinned to their own side of the appointment
    if caller.role == "patient":
        patient_id = caller.id
    elif caller.role == "provider":
        provider_id = caller.id
    filters = AppointmentFilters(
        provider_id=provider_id,
        patient_id=patient_id,
        status=status_filter,
        appointment_type=appointment_type,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    result = await query_appointments(session, filters)
    return AppointmentList(
        items=[AppointmentResponse.model_validate(a) for a in result.items],
        pagination=PageMeta(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def read_appointment(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentResponse:
    appointment = await _load_for(session, caller, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update(
    appointment_id: int,
    body: UpdateAppointmentRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentResponse:
    await _load_for(session, caller, appointment_id)
    if caller.role == "patient" and body.provider_notes is not None:
        raise Forbidden("Patients cannot edit provider notes", field="provider_notes")
    appointment = await update_appointment(session, appointment_id, body.to_update())
    return AppointmentResponse.model_validate(appointment)


@router.delete("/{appointment_id}", response_model=AppointmentResponse)
async def cancel(
    appointment_id: int,
    body: CancelRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentResponse:
    await _load_for(session, caller, appointment_id)
    if caller.role == "patient" and body.cancelled_by not in (None, "patient"):
        raise Forbidden("Patients can only cancel as patient", field="cancelled_by")
    appointment = await cancel_appointment(
        session, appointment_id, body.cancellation_reason, body.cancelled_by
    )
    return AppointmentResponse.model_validate(appointment)


async def _advance(
    session: AsyncSession, caller: Caller, appointment_id: int, target: str
) -> AppointmentResponse:
    await _load_for(session, caller, appointment_id)
    appointment = await advance_appointment(session, appointment_id, target)
    return AppointmentResponse.model_validate(appointment)


@router.post("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> AppointmentResponse:
    return await _advance(session, caller, appointment_id, AppointmentStatus.CONFIRMED.value)


@router.post("/{appointment_id}/check-in", response_model=AppointmentResponse)
async def check_in(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(clinician),
) -> AppointmentResponse:
    return await _advance(session, caller, appointment_id, AppointmentStatus.CHECKED_IN.value)


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(clinician),
) -> AppointmentResponse:
    return await _advance(session, caller, appointment_id, AppointmentStatus.IN_EXAM.value)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(clinician),
) -> AppointmentResponse:
    return await _advance(session, caller, appointment_id, AppointmentStatus.COMPLETED.value)


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def no_show(
    appointment_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(clinician),
) -> AppointmentResponse:
    return await _advance(session, caller, appointment_id, AppointmentStatus.NO_SHOW.value)


@router.post("/{appointment_id}/status", response_model=AppointmentResponse)
async def change_status(
    appointment_id: int,
    body: StatusRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(clinician),
) -> AppointmentResponse:
    """Generic transition; cancelling still goes through DELETE with a reason."""
    return await _advance(session, caller, appointment_id, body.status)
