from datetime import date, datetime

from pydantic import Field

from app.api.schemas.common import CamelModel
from app.core.config import settings
from app.core.timeutils import ClockTime
from app.models.availability import AvailabilityCreate, BreakInterval


class BreakIntervalSchema(CamelModel):
    start_time: ClockTime
    end_time: ClockTime


class AvailabilityRequest(CamelModel):
    provider_id: int
    is_recurring: bool = True
    day_of_week: int | None = None
    specific_date: date | None = None
    start_time: ClockTime
    end_time: ClockTime
    slot_duration: int = settings.default_slot_duration
    break_intervals: list[BreakIntervalSchema] = Field(default_factory=list)
    is_active: bool = True
    timezone: str = settings.default_timezone

    def to_create(self) -> AvailabilityCreate:
        return AvailabilityCreate(
            provider_id=self.provider_id,
            is_recurring=self.is_recurring,
            day_of_week=self.day_of_week,
            specific_date=self.specific_date,
            start_time=self.start_time,
            end_time=self.end_time,
            slot_duration=self.slot_duration,
            break_intervals=[
                BreakInterval(start_time=b.start_time, end_time=b.end_time) for b in self.break_intervals
            ],
            is_active=self.is_active,
            timezone=self.timezone,
        )


class BulkAvailabilityRequest(CamelModel):
    provider_id: int
    availabilities: list[AvailabilityRequest]


class AvailabilityResponse(CamelModel):
    id: int
    provider_id: int
    is_recurring: bool
    day_of_week: int | None
    specific_date: date | None
    start_time: ClockTime
    end_time: ClockTime
    slot_duration: int
    break_intervals: list[BreakIntervalSchema]
    is_active: bool
    timezone: str
    created_at: datetime
    updated_at: datetime


class AvailabilityDeleted(CamelModel):
    id: int
    reconcile: str
    removed_slots: int
