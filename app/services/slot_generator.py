"""Expand availability patterns into discrete candidate slots.

Pure functions only: nothing here touches the database, so the same pattern
and range always produce the same slots.
"""
from datetime import date, time
from typing import NamedTuple

from app.core.timeutils import from_minutes, iter_dates, overlaps, sunday_weekday, to_minutes
from app.models.availability import AvailabilityPattern


class SlotCandidate(NamedTuple):
    provider_id: int
    date: date
    start_time: time
    end_time: time
    timezone: str


def pattern_applies_to(pattern: AvailabilityPattern, day: date, include_inactive: bool = False) -> bool:
    if not pattern.is_active and not include_inactive:
        return False
    if pattern.is_recurring:
        return pattern.day_of_week == sunday_weekday(day)
    return pattern.specific_date == day


def generate_slots_for_day(
    pattern: AvailabilityPattern, day: date, include_inactive: bool = False
) -> list[SlotCandidate]:
    """Slots for one day: step from start to end, drop anything touching a break.

    A trailing interval that would run past end_time is discarded, not truncated.
    """
    if not pattern_applies_to(pattern, day, include_inactive):
        return []
    breaks = pattern.break_windows()
    step = pattern.slot_duration
    end = to_minutes(pattern.end_time)
    cursor = to_minutes(pattern.start_time)
    slots: list[SlotCandidate] = []
    while cursor + step <= end:
        slot_start = from_minutes(cursor)
        slot_end = from_minutes(cursor + step)
        if not any(overlaps(slot_start, slot_end, b_start, b_end) for b_start, b_end in breaks):
            slots.append(
                SlotCandidate(
                    provider_id=pattern.provider_id,
                    date=day,
                    start_time=slot_start,
                    end_time=slot_end,
                    timezone=pattern.timezone,
                )
            )
        cursor += step
    return slots


def select_pattern_for_day(
    patterns: list[AvailabilityPattern], day: date, include_inactive: bool = False
) -> AvailabilityPattern | None:
    """The pattern that governs a date: a one-off pattern overrides the weekly one."""
    recurring = None
    for pattern in patterns:
        if not pattern_applies_to(pattern, day, include_inactive):
            continue
        if not pattern.is_recurring:
            return pattern
        recurring = recurring or pattern
    return recurring


def generate_slots(
    patterns: AvailabilityPattern | list[AvailabilityPattern],
    start_date: date,
    end_date: date,
    include_inactive: bool = False,
) -> list[SlotCandidate]:
    """Candidate slots for every date in [start_date, end_date], ordered by date then start."""
    if isinstance(patterns, AvailabilityPattern):
        patterns = [patterns]
    slots: list[SlotCandidate] = []
    for day in iter_dates(start_date, end_date):
        pattern = select_pattern_for_day(patterns, day, include_inactive)
        if pattern is not None:
            slots.extend(generate_slots_for_day(pattern, day, include_inactive))
    return slots
