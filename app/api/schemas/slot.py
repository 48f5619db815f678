import datetime as dt

from pydantic import model_validator

from app.api.schemas.common import CamelModel
from app.core.timeutils import ClockTime


class SlotResponse(CamelModel):
    id: int
    provider_id: int
    date: dt.date
    start_time: ClockTime
    end_time: ClockTime
    status: str  # available | booked | blocked
    is_booked: bool
    is_blocked: bool
    block_reason: str | None = None
    appointment_id: int | None = None
    timezone: str


class SlotsForDay(CamelModel):
    provider_id: int
    date: dt.date
    slots: list[SlotResponse]


class MaterializeRequest(CamelModel):
    start_date: dt.date
    end_date: dt.date | None = None

    @model_validator(mode="after")
    def default_end(self) -> "MaterializeRequest":
        if self.end_date is None:
            self.end_date = self.start_date
        return self


class MaterializeResponse(CamelModel):
    provider_id: int
    start_date: dt.date
    end_date: dt.date
    created: int
    skipped: int


class BlockRequest(CamelModel):
    date: dt.date
    start_time: ClockTime
    end_time: ClockTime
    reason: str | None = None


class BlockResponse(CamelModel):
    blocked: list[SlotResponse]
    skipped_booked: list[SlotResponse]


class UnblockResponse(CamelModel):
    unblocked: list[SlotResponse]
