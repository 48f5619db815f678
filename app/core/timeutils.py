"""Day-agnostic clock helpers shared by the generator, validators and API schemas."""
import re
from collections.abc import Iterator
from datetime import UTC, date, datetime, time, timedelta
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

CLOCK_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def parse_clock(value: str | time) -> time:
    """Parse an HH:MM 24-hour string (leading zero optional) into a time."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str) or not CLOCK_PATTERN.match(value):
        raise ValueError("must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def format_clock(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


# Wire type: accepts "9:00" / "09:00", always serializes as "09:00"
ClockTime = Annotated[
    time,
    BeforeValidator(parse_clock),
    PlainSerializer(format_clock, return_type=str, when_used="json"),
]


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def minutes_between(start: time, end: time) -> int:
    return to_minutes(end) - to_minutes(start)


def overlaps(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open overlap: intervals that only touch at an endpoint do not overlap."""
    return start_a < end_b and end_a > start_b


def sunday_weekday(d: date) -> int:
    """Day of week with 0 = Sunday .. 6 = Saturday."""
    return (d.weekday() + 1) % 7


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every calendar date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)
