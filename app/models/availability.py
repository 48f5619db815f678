from datetime import date, datetime, time

from sqlalchemy import JSON, Column, Index, text
from sqlmodel import Field, SQLModel

from app.core.timeutils import format_clock, parse_clock, utc_naive_now


class BreakInterval(SQLModel):
    start_time: time
    end_time: time


class AvailabilityPattern(SQLModel, table=True):
    __tablename__ = "availability_patterns"
    __table_args__ = (
        # At most one active pattern per provider and weekday (recurring) or date (one-off)
        Index(
            "uq_availability_provider_day_active",
            "provider_id",
            "day_of_week",
            unique=True,
            sqlite_where=text("is_active AND is_recurring"),
            postgresql_where=text("is_active AND is_recurring"),
        ),
        Index(
            "uq_availability_provider_date_active",
            "provider_id",
            "specific_date",
            unique=True,
            sqlite_where=text("is_active AND NOT is_recurring"),
            postgresql_where=text("is_active AND NOT is_recurring"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    is_recurring: bool = True
    day_of_week: int | None = None  # 0 = Sunday .. 6 = Saturday
    specific_date: date | None = None
    start_time: time
    end_time: time
    slot_duration: int = 30
    # [{"start_time": "HH:MM", "end_time": "HH:MM"}, ...] sorted by start
    break_intervals: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    is_active: bool = True
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)

    def break_windows(self) -> list[tuple[time, time]]:
        return [
            (parse_clock(b["start_time"]), parse_clock(b["end_time"]))
            for b in self.break_intervals or []
        ]


def serialize_breaks(breaks: list[BreakInterval]) -> list[dict]:
    ordered = sorted(breaks, key=lambda b: b.start_time)
    return [
        {"start_time": format_clock(b.start_time), "end_time": format_clock(b.end_time)}
        for b in ordered
    ]


class AvailabilityCreate(SQLModel):
    provider_id: int
    is_recurring: bool = True
    day_of_week: int | None = None
    specific_date: date | None = None
    start_time: time
    end_time: time
    slot_duration: int = 30
    break_intervals: list[BreakInterval] = Field(default_factory=list)
    is_active: bool = True
    timezone: str = "UTC"
