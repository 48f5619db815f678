import logging
import math
from datetime import date
from typing import NamedTuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidTransition, NotFound, SlotConflict, ValidationError
from app.core.timeutils import minutes_between, utc_naive_now
from app.models.appointment import (
    RELEASED_STATUSES,
    Appointment,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStatus,
    AppointmentUpdate,
)
from app.services.conflict_service import check_availability, lock_provider_schedule
from app.services.identity_service import find_patient, find_provider
from app.services.lifecycle import ensure_transition
from app.services.slot_service import book_slots_for, find_blocked_overlap, release_slots_for
from app.services.validation import (
    validate_booking,
    validate_cancellation,
    validate_details,
    validate_filters,
    validate_reschedule,
    validate_status,
)

logger = logging.getLogger(__name__)

# Details may change while the appointment has not started yet
_EDITABLE_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)


class AppointmentPage(NamedTuple):
    items: list[Appointment]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


def _today() -> date:
    return utc_naive_now().date()


async def _claim_time(session: AsyncSession, appointment: Appointment, exclude_self: bool) -> None:
    """Reject the appointment's interval if it is blocked or overlaps an active booking.

    Must run after lock_provider_schedule, in the same transaction as the write.
    """
    blocked = await find_blocked_overlap(
        session, appointment.provider_id, appointment.appointment_date,
        appointment.start_time, appointment.end_time,
    )
    if blocked:
        raise SlotConflict(
            f"Provider has blocked this time: {blocked.block_reason or 'unavailable'}",
            field="start_time",
        )
    conflict = await check_availability(
        session,
        appointment.provider_id,
        appointment.appointment_date,
        appointment.start_time,
        appointment.end_time,
        exclude_appointment_id=appointment.id if exclude_self else None,
    )
    if not conflict.available:
        raise SlotConflict(
            "Time slot is not available",
            field="start_time",
            appointment_id=conflict.conflicting_appointment_id,
        )


async def _flush_claim(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost a race on the active-start unique index
        raise SlotConflict("Time slot is not available", field="start_time") from exc


async def book_appointment(
    session: AsyncSession, data: AppointmentCreate, today: date | None = None
) -> Appointment:
    validate_booking(data, today or _today()).raise_for_errors()
    await find_patient(session, data.patient_id)
    await find_provider(session, data.provider_id)
    await lock_provider_schedule(session, data.provider_id)

    appointment = Appointment(
        patient_id=data.patient_id,
        provider_id=data.provider_id,
        appointment_date=data.appointment_date,
        start_time=data.start_time,
        end_time=data.end_time,
        duration_minutes=minutes_between(data.start_time, data.end_time),
        appointment_type=data.appointment_type,
        appointment_mode=data.appointment_mode,
        reason_for_visit=data.reason_for_visit.strip(),
        notes=data.notes,
        timezone=data.timezone,
    )
    await _claim_time(session, appointment, exclude_self=False)
    session.add(appointment)
    await _flush_claim(session)
    await session.refresh(appointment)
    slots = await book_slots_for(session, appointment)
    logger.info(
        "Booked appointment %s provider=%s date=%s %s-%s (%d slot(s) marked)",
        appointment.reference, appointment.provider_id, appointment.appointment_date,
        appointment.start_time, appointment.end_time, len(slots),
    )
    return appointment


async def get_appointment(session: AsyncSession, appointment_id: int, for_update: bool = False) -> Appointment:
    q = select(Appointment).where(Appointment.id == appointment_id)
    if for_update:
        q = q.with_for_update()
    result = await session.execute(q)
    appointment = result.scalar_one_or_none()
    if not appointment:
        raise NotFound("Appointment not found", field="appointment_id", appointment_id=appointment_id)
    return appointment


async def cancel_appointment(
    session: AsyncSession, appointment_id: int, reason: str | None, cancelled_by: str | None
) -> Appointment:
    """Cancel and free the appointment's slots in the caller's transaction.

    Cancelling twice is an InvalidTransition, not a silent success.
    """
    validate_cancellation(reason, cancelled_by).raise_for_errors()
    appointment = await get_appointment(session, appointment_id, for_update=True)
    ensure_transition(appointment.status, AppointmentStatus.CANCELLED.value, appointment.id)

    now = utc_naive_now()
    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation_reason = reason.strip()
    appointment.cancelled_by = cancelled_by
    appointment.cancelled_at = now
    appointment.updated_at = now
    session.add(appointment)
    await session.flush()
    released = await release_slots_for(session, appointment.id)
    logger.info(
        "Cancelled appointment %s by %s (%d slot(s) freed)",
        appointment.reference, cancelled_by, len(released),
    )
    return appointment


async def advance_appointment(session: AsyncSession, appointment_id: int, target_status: str) -> Appointment:
    validate_status(target_status).raise_for_errors()
    if target_status == AppointmentStatus.CANCELLED.value:
        raise ValidationError(
            "Cancelling requires a reason and an actor; use the cancel operation",
            field="status",
        )
    appointment = await get_appointment(session, appointment_id, for_update=True)
    ensure_transition(appointment.status, target_status, appointment.id)

    appointment.status = target_status
    appointment.updated_at = utc_naive_now()
    session.add(appointment)
    await session.flush()
    if AppointmentStatus(target_status) in RELEASED_STATUSES:
        await release_slots_for(session, appointment.id)
    logger.info("Appointment %s moved to %s", appointment.reference, target_status)
    return appointment


async def update_appointment(
    session: AsyncSession, appointment_id: int, changes: AppointmentUpdate, today: date | None = None
) -> Appointment:
    """Edit details and optionally reschedule; a new time goes through the conflict check again."""
    appointment = await get_appointment(session, appointment_id, for_update=True)
    if appointment.status not in _EDITABLE_STATUSES:
        raise InvalidTransition(
            f"Cannot change an appointment that is {appointment.status}",
            field="status",
            appointment_id=appointment.id,
        )
    validate_details(
        changes.appointment_type,
        changes.appointment_mode,
        changes.reason_for_visit,
        changes.notes,
        changes.provider_notes,
    ).raise_for_errors()

    new_date = changes.appointment_date or appointment.appointment_date
    new_start = changes.start_time or appointment.start_time
    new_end = changes.end_time or appointment.end_time
    moved = (new_date, new_start, new_end) != (
        appointment.appointment_date, appointment.start_time, appointment.end_time
    )
    if moved:
        validate_reschedule(new_date, new_start, new_end, today or _today()).raise_for_errors()
        await lock_provider_schedule(session, appointment.provider_id)
        await release_slots_for(session, appointment.id)
        appointment.appointment_date = new_date
        appointment.start_time = new_start
        appointment.end_time = new_end
        appointment.duration_minutes = minutes_between(new_start, new_end)
        with session.no_autoflush:
            await _claim_time(session, appointment, exclude_self=True)

    if changes.appointment_type is not None:
        appointment.appointment_type = changes.appointment_type
    if changes.appointment_mode is not None:
        appointment.appointment_mode = changes.appointment_mode
    if changes.reason_for_visit is not None:
        appointment.reason_for_visit = changes.reason_for_visit.strip()
    if changes.notes is not None:
        appointment.notes = changes.notes
    if changes.provider_notes is not None:
        appointment.provider_notes = changes.provider_notes
    appointment.updated_at = utc_naive_now()
    session.add(appointment)
    await _flush_claim(session)
    if moved:
        await book_slots_for(session, appointment)
        logger.info(
            "Rescheduled appointment %s to %s %s-%s",
            appointment.reference, new_date, new_start, new_end,
        )
    return appointment


async def query_appointments(session: AsyncSession, filters: AppointmentFilters) -> AppointmentPage:
    """Filtered, paginated listing ordered by date then start time. Read-only."""
    validate_filters(filters, settings.max_page_size).raise_for_errors()
    conditions = []
    if filters.provider_id is not None:
        conditions.append(Appointment.provider_id == filters.provider_id)
    if filters.patient_id is not None:
        conditions.append(Appointment.patient_id == filters.patient_id)
    if filters.status:
        conditions.append(Appointment.status == filters.status)
    if filters.appointment_type:
        conditions.append(Appointment.appointment_type == filters.appointment_type)
    if filters.start_date:
        conditions.append(Appointment.appointment_date >= filters.start_date)
    if filters.end_date:
        conditions.append(Appointment.appointment_date <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search}%"
        conditions.append(
            or_(Appointment.reference.ilike(pattern), Appointment.reason_for_visit.ilike(pattern))
        )

    total_result = await session.execute(
        select(func.count()).select_from(Appointment).where(*conditions)
    )
    total = total_result.scalar_one()
    result = await session.execute(
        select(Appointment)
        .where(*conditions)
        .order_by(Appointment.appointment_date, Appointment.start_time, Appointment.id)
        .offset((filters.page - 1) * filters.limit)
        .limit(filters.limit)
    )
    total_pages = math.ceil(total / filters.limit) if total else 0
    return AppointmentPage(
        items=list(result.scalars().all()),
        page=filters.page,
        limit=filters.limit,
        total=total,
        total_pages=total_pages,
        has_next=filters.page < total_pages,
        has_prev=filters.page > 1,
    )
