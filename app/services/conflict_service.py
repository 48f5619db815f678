from datetime import date, time
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.models.appointment import RELEASED_STATUSES, Appointment
from app.models.user import User

_RELEASED = [s.value for s in RELEASED_STATUSES]


class ConflictResult(NamedTuple):
    available: bool
    conflicting_appointment_id: int | None = None


async def lock_provider_schedule(session: AsyncSession, provider_id: int) -> None:
    """Row-lock the provider so check-then-insert runs one booking at a time.

    Held until the surrounding transaction commits or rolls back. Dialects
    without FOR UPDATE (SQLite) serialize writers themselves.
    """
    result = await session.execute(
        select(User.id).where(User.id == provider_id).with_for_update()
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Provider not found", field="provider_id")


async def find_overlapping_appointments(
    session: AsyncSession,
    provider_id: int,
    day: date,
    start: time,
    end: time,
    exclude_appointment_id: int | None = None,
) -> list[Appointment]:
    q = (
        select(Appointment)
        .where(
            Appointment.provider_id == provider_id,
            Appointment.appointment_date == day,
            Appointment.status.not_in(_RELEASED),
            # half-open: touching endpoints are not a conflict
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        .order_by(Appointment.start_time, Appointment.id)
    )
    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != exclude_appointment_id)
    result = await session.execute(q)
    return list(result.scalars().all())


async def check_availability(
    session: AsyncSession,
    provider_id: int,
    day: date,
    start: time,
    end: time,
    exclude_appointment_id: int | None = None,
) -> ConflictResult:
    overlapping = await find_overlapping_appointments(
        session, provider_id, day, start, end, exclude_appointment_id
    )
    if overlapping:
        return ConflictResult(available=False, conflicting_appointment_id=overlapping[0].id)
    return ConflictResult(available=True)
