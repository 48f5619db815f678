import logging
from datetime import date, time
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.timeutils import iter_dates, overlaps, utc_naive_now
from app.models.appointment import Appointment
from app.models.availability import AvailabilityPattern
from app.models.slot import Slot
from app.services.identity_service import find_provider
from app.services.slot_generator import (
    SlotCandidate,
    generate_slots,
    generate_slots_for_day,
    select_pattern_for_day,
)
from app.services.validation import validate_block_window, validate_date_range

logger = logging.getLogger(__name__)

_SLOT_KEY = ["provider_id", "date", "start_time"]


class MaterializeResult(NamedTuple):
    created: int
    skipped: int


class BlockResult(NamedTuple):
    blocked: list[Slot]
    skipped_booked: list[Slot]


async def get_active_patterns(session: AsyncSession, provider_id: int) -> list[AvailabilityPattern]:
    result = await session.execute(
        select(AvailabilityPattern).where(
            AvailabilityPattern.provider_id == provider_id,
            AvailabilityPattern.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())


async def _slots_between(
    session: AsyncSession, provider_id: int, start_date: date, end_date: date
) -> list[Slot]:
    result = await session.execute(
        select(Slot).where(
            Slot.provider_id == provider_id,
            Slot.date >= start_date,
            Slot.date <= end_date,
        )
    )
    return list(result.scalars().all())


def _slot_values(candidate: SlotCandidate) -> dict:
    now = utc_naive_now()
    return {
        "provider_id": candidate.provider_id,
        "date": candidate.date,
        "start_time": candidate.start_time,
        "end_time": candidate.end_time,
        "is_booked": False,
        "is_blocked": False,
        "block_reason": None,
        "appointment_id": None,
        "timezone": candidate.timezone,
        "created_at": now,
        "updated_at": now,
    }


async def _insert_if_absent(session: AsyncSession, candidate: SlotCandidate) -> bool:
    """Insert one slot unless its (provider, date, start) key already exists."""
    values = _slot_values(candidate)
    dialect = session.bind.dialect.name if session.bind is not None else ""
    if dialect == "postgresql":
        stmt = pg_insert(Slot.__table__).values(**values).on_conflict_do_nothing(index_elements=_SLOT_KEY)
    elif dialect == "sqlite":
        stmt = sqlite_insert(Slot.__table__).values(**values).on_conflict_do_nothing(index_elements=_SLOT_KEY)
    else:
        # Keys were pre-filtered by the caller; a concurrent insert surfaces as IntegrityError
        session.add(Slot(**values))
        await session.flush()
        return True
    result = await session.execute(stmt)
    return bool(result.rowcount)


async def materialize_slots(
    session: AsyncSession, provider_id: int, start_date: date, end_date: date
) -> MaterializeResult:
    """Expand the provider's active patterns over the range and insert missing slots.

    Existing rows (booked, blocked or free) are never overwritten; candidates
    whose key already exists, or that fall inside a blocked window, are skipped.
    """
    validate_date_range(start_date, end_date, settings.max_materialize_days).raise_for_errors()
    await find_provider(session, provider_id)

    patterns = await get_active_patterns(session, provider_id)
    candidates = generate_slots(patterns, start_date, end_date)
    existing = await _slots_between(session, provider_id, start_date, end_date)
    taken = {(s.date, s.start_time) for s in existing}
    blocked = [s for s in existing if s.is_blocked]

    created = 0
    for candidate in candidates:
        if (candidate.date, candidate.start_time) in taken:
            continue
        if any(
            b.date == candidate.date and overlaps(candidate.start_time, candidate.end_time, b.start_time, b.end_time)
            for b in blocked
        ):
            continue
        if await _insert_if_absent(session, candidate):
            created += 1
    logger.info(
        "Materialized slots provider=%s range=%s..%s created=%d candidates=%d",
        provider_id, start_date, end_date, created, len(candidates),
    )
    return MaterializeResult(created=created, skipped=len(candidates) - created)


async def list_available_slots(session: AsyncSession, provider_id: int, day: date) -> list[Slot]:
    result = await session.execute(
        select(Slot)
        .where(
            Slot.provider_id == provider_id,
            Slot.date == day,
            Slot.is_booked == False,  # noqa: E712
            Slot.is_blocked == False,  # noqa: E712
        )
        .order_by(Slot.start_time)
    )
    return list(result.scalars().all())


async def list_slots(session: AsyncSession, provider_id: int, day: date) -> list[Slot]:
    result = await session.execute(
        select(Slot).where(Slot.provider_id == provider_id, Slot.date == day).order_by(Slot.start_time)
    )
    return list(result.scalars().all())


async def _overlapping_slots(
    session: AsyncSession, provider_id: int, day: date, start: time, end: time
) -> list[Slot]:
    result = await session.execute(
        select(Slot)
        .where(
            Slot.provider_id == provider_id,
            Slot.date == day,
            Slot.start_time < end,
            Slot.end_time > start,
        )
        .order_by(Slot.start_time)
    )
    return list(result.scalars().all())


async def find_blocked_overlap(
    session: AsyncSession, provider_id: int, day: date, start: time, end: time
) -> Slot | None:
    for slot in await _overlapping_slots(session, provider_id, day, start, end):
        if slot.is_blocked:
            return slot
    return None


async def block_slots(
    session: AsyncSession,
    provider_id: int,
    day: date,
    start: time,
    end: time,
    reason: str | None = None,
) -> BlockResult:
    """Block free slots inside a window; booked slots are left alone and reported.

    When nothing has been materialized for the window yet, a single blocked
    row covering it is stored so later materialization stays clear of it.
    """
    validate_block_window(start, end, reason).raise_for_errors()
    await find_provider(session, provider_id)
    reason = reason or "Provider blocked"
    now = utc_naive_now()

    overlapping = await _overlapping_slots(session, provider_id, day, start, end)
    blocked: list[Slot] = []
    skipped: list[Slot] = []
    for slot in overlapping:
        if slot.is_booked:
            skipped.append(slot)
            continue
        slot.is_blocked = True
        slot.block_reason = reason
        slot.updated_at = now
        session.add(slot)
        blocked.append(slot)
    if not overlapping:
        slot = Slot(
            provider_id=provider_id,
            date=day,
            start_time=start,
            end_time=end,
            is_blocked=True,
            block_reason=reason,
            timezone=settings.default_timezone,
        )
        session.add(slot)
        blocked.append(slot)
    await session.flush()
    logger.info(
        "Blocked %d slot(s) provider=%s date=%s (%d booked left untouched)",
        len(blocked), provider_id, day, len(skipped),
    )
    return BlockResult(blocked=blocked, skipped_booked=skipped)


async def unblock_slots(
    session: AsyncSession, provider_id: int, day: date, start: time, end: time
) -> list[Slot]:
    """Free blocked slots inside a window and return them.

    Blocked rows that no active pattern generates for the day (the wide row
    stored by blocking an unmaterialized window) are deleted instead, so
    materialization can fill the window with real slots again.
    """
    validate_block_window(start, end, None).raise_for_errors()
    await find_provider(session, provider_id)
    patterns = await get_active_patterns(session, provider_id)
    generated = {(c.start_time, c.end_time) for c in generate_slots(patterns, day, day)}
    now = utc_naive_now()
    released: list[Slot] = []
    removed = 0
    for slot in await _overlapping_slots(session, provider_id, day, start, end):
        if not slot.is_blocked:
            continue
        if not slot.is_booked and (slot.start_time, slot.end_time) not in generated:
            await session.delete(slot)
            removed += 1
            continue
        slot.is_blocked = False
        slot.block_reason = None
        slot.updated_at = now
        session.add(slot)
        released.append(slot)
    await session.flush()
    logger.info(
        "Unblocked %d slot(s) provider=%s date=%s (%d placeholder row(s) removed)",
        len(released), provider_id, day, removed,
    )
    return released


async def book_slots_for(session: AsyncSession, appointment: Appointment) -> list[Slot]:
    """Mark free slots covered by the appointment as booked by it.

    Slots are an index of free time, not a gate: having none is fine.
    """
    now = utc_naive_now()
    booked: list[Slot] = []
    for slot in await _overlapping_slots(
        session, appointment.provider_id, appointment.appointment_date,
        appointment.start_time, appointment.end_time,
    ):
        if slot.is_blocked or slot.is_booked:
            continue
        slot.is_booked = True
        slot.appointment_id = appointment.id
        slot.updated_at = now
        session.add(slot)
        booked.append(slot)
    await session.flush()
    return booked


async def release_slots_for(session: AsyncSession, appointment_id: int) -> list[Slot]:
    result = await session.execute(select(Slot).where(Slot.appointment_id == appointment_id))
    now = utc_naive_now()
    released = list(result.scalars().all())
    for slot in released:
        slot.is_booked = False
        slot.appointment_id = None
        slot.updated_at = now
        session.add(slot)
    await session.flush()
    return released


async def release_pattern_slots(
    session: AsyncSession, pattern: AvailabilityPattern, today: date
) -> int:
    """Delete future free slots this pattern would have generated. Returns count deleted.

    Dates governed by another active pattern (a one-off overriding this
    weekly pattern, say) keep their slots.
    """
    result = await session.execute(
        select(func.max(Slot.date)).where(Slot.provider_id == pattern.provider_id, Slot.date >= today)
    )
    latest = result.scalar_one_or_none()
    if latest is None:
        return 0
    others = [p for p in await get_active_patterns(session, pattern.provider_id) if p.id != pattern.id]
    # active patterns first so they win a weekday tie with an inactive one
    candidates_by_priority = others + [pattern]
    generated: set[tuple] = set()
    for day in iter_dates(today, latest):
        governing = select_pattern_for_day(candidates_by_priority, day, include_inactive=True)
        if governing is None or governing.id != pattern.id:
            continue
        generated.update(
            (c.date, c.start_time, c.end_time)
            for c in generate_slots_for_day(pattern, day, include_inactive=True)
        )
    deleted = 0
    for slot in await _slots_between(session, pattern.provider_id, today, latest):
        if slot.is_booked or slot.is_blocked or slot.appointment_id is not None:
            continue
        if (slot.date, slot.start_time, slot.end_time) in generated:
            await session.delete(slot)
            deleted += 1
    await session.flush()
    return deleted
