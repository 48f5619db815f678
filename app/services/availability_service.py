import logging
from datetime import date

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import DuplicatePattern, NotFound, ValidationError
from app.core.timeutils import utc_naive_now
from app.models.availability import AvailabilityCreate, AvailabilityPattern, serialize_breaks
from app.services.identity_service import find_provider
from app.services.slot_service import release_pattern_slots
from app.services.validation import validate_availability, validate_bulk_availability

logger = logging.getLogger(__name__)

RECONCILE_POLICIES = ("release_unbooked", "keep")


def _pattern_key(data: AvailabilityCreate | AvailabilityPattern) -> tuple:
    if data.is_recurring:
        return ("weekly", data.day_of_week)
    return ("date", data.specific_date)


async def _find_duplicate(
    session: AsyncSession, data: AvailabilityCreate, exclude_id: int | None = None
) -> AvailabilityPattern | None:
    if not data.is_active:
        return None
    q = select(AvailabilityPattern).where(
        AvailabilityPattern.provider_id == data.provider_id,
        AvailabilityPattern.is_active == True,  # noqa: E712
        AvailabilityPattern.is_recurring == data.is_recurring,
    )
    if data.is_recurring:
        q = q.where(AvailabilityPattern.day_of_week == data.day_of_week)
    else:
        q = q.where(AvailabilityPattern.specific_date == data.specific_date)
    if exclude_id is not None:
        q = q.where(AvailabilityPattern.id != exclude_id)
    result = await session.execute(q)
    return result.scalars().first()


def _duplicate_error(data: AvailabilityCreate) -> DuplicatePattern:
    if data.is_recurring:
        return DuplicatePattern(
            "Availability already exists for this day of week", field="day_of_week"
        )
    return DuplicatePattern("Availability already exists for this date", field="specific_date")


def _apply(pattern: AvailabilityPattern, data: AvailabilityCreate) -> None:
    pattern.is_recurring = data.is_recurring
    pattern.day_of_week = data.day_of_week if data.is_recurring else None
    pattern.specific_date = None if data.is_recurring else data.specific_date
    pattern.start_time = data.start_time
    pattern.end_time = data.end_time
    pattern.slot_duration = data.slot_duration
    pattern.break_intervals = serialize_breaks(data.break_intervals)
    pattern.is_active = data.is_active
    pattern.timezone = data.timezone


async def _flush_pattern(session: AsyncSession, data: AvailabilityCreate) -> None:
    try:
        await session.flush()
    except IntegrityError as exc:
        raise _duplicate_error(data) from exc


async def create_availability(session: AsyncSession, data: AvailabilityCreate) -> AvailabilityPattern:
    validate_availability(data).raise_for_errors()
    await find_provider(session, data.provider_id)
    if await _find_duplicate(session, data):
        raise _duplicate_error(data)

    pattern = AvailabilityPattern(provider_id=data.provider_id, start_time=data.start_time, end_time=data.end_time)
    _apply(pattern, data)
    session.add(pattern)
    await _flush_pattern(session, data)
    await session.refresh(pattern)
    logger.info(
        "Created availability %s provider=%s key=%s", pattern.id, pattern.provider_id, _pattern_key(pattern)
    )
    return pattern


async def get_availability(session: AsyncSession, availability_id: int) -> AvailabilityPattern:
    pattern = await session.get(AvailabilityPattern, availability_id)
    if not pattern:
        raise NotFound("Availability not found", field="availability_id")
    return pattern


async def list_provider_availability(
    session: AsyncSession, provider_id: int, active_only: bool = False
) -> list[AvailabilityPattern]:
    q = select(AvailabilityPattern).where(AvailabilityPattern.provider_id == provider_id)
    if active_only:
        q = q.where(AvailabilityPattern.is_active == True)  # noqa: E712
    # weekly patterns first by weekday, then one-offs by date
    q = q.order_by(
        AvailabilityPattern.is_recurring.desc(),
        AvailabilityPattern.day_of_week,
        AvailabilityPattern.specific_date,
        AvailabilityPattern.id,
    )
    result = await session.execute(q)
    return list(result.scalars().all())


async def update_availability(
    session: AsyncSession, availability_id: int, data: AvailabilityCreate
) -> AvailabilityPattern:
    """Replace a pattern's definition. The provider cannot change.

    Already materialized slots are left as they are; re-materialize to pick
    up the new shape.
    """
    pattern = await get_availability(session, availability_id)
    if data.provider_id != pattern.provider_id:
        raise ValidationError("Availability cannot be moved to another provider", field="provider_id")
    validate_availability(data).raise_for_errors()
    if await _find_duplicate(session, data, exclude_id=pattern.id):
        raise _duplicate_error(data)

    _apply(pattern, data)
    pattern.updated_at = utc_naive_now()
    session.add(pattern)
    await _flush_pattern(session, data)
    await session.refresh(pattern)
    return pattern


async def delete_availability(
    session: AsyncSession,
    availability_id: int,
    reconcile: str = "release_unbooked",
    today: date | None = None,
) -> int:
    """Delete a pattern and reconcile its future slots.

    ``release_unbooked`` removes free future slots the pattern generated;
    ``keep`` leaves every slot. Booked and blocked slots always stay.
    Returns the number of slots removed.
    """
    if reconcile not in RECONCILE_POLICIES:
        raise ValidationError(
            f"Reconcile policy must be one of: {', '.join(RECONCILE_POLICIES)}", field="reconcile"
        )
    pattern = await get_availability(session, availability_id)
    removed = 0
    if reconcile == "release_unbooked":
        removed = await release_pattern_slots(session, pattern, today or utc_naive_now().date())
    await session.delete(pattern)
    await session.flush()
    logger.info(
        "Deleted availability %s provider=%s (%d free slot(s) removed)",
        availability_id, pattern.provider_id, removed,
    )
    return removed


async def replace_provider_availability(
    session: AsyncSession, provider_id: int, items: list[AvailabilityCreate]
) -> list[AvailabilityPattern]:
    """Atomically swap every pattern of a provider for the given set."""
    validate_bulk_availability(provider_id, items, settings.max_bulk_patterns).raise_for_errors()
    await find_provider(session, provider_id)

    seen: set[tuple] = set()
    for index, item in enumerate(items):
        if not item.is_active:
            continue
        key = _pattern_key(item)
        if key in seen:
            field = "day_of_week" if item.is_recurring else "specific_date"
            raise DuplicatePattern(
                "Duplicate availability in request", field=f"availabilities[{index}].{field}"
            )
        seen.add(key)

    # Explicit statement: the unit of work would emit the inserts first
    await session.execute(delete(AvailabilityPattern).where(AvailabilityPattern.provider_id == provider_id))
    patterns = []
    for item in items:
        pattern = AvailabilityPattern(provider_id=provider_id, start_time=item.start_time, end_time=item.end_time)
        _apply(pattern, item)
        session.add(pattern)
        patterns.append(pattern)
    await session.flush()
    for pattern in patterns:
        await session.refresh(pattern)
    logger.info("Replaced availability provider=%s count=%d", provider_id, len(patterns))
    return patterns
