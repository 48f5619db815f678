import datetime as dt
from datetime import datetime, time

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from app.core.timeutils import utc_naive_now


class Slot(SQLModel, table=True):
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("provider_id", "date", "start_time", name="uq_slots_provider_date_start"),
    )

    id: int | None = Field(default=None, primary_key=True)
    provider_id: int = Field(foreign_key="users.id", index=True)
    date: dt.date = Field(index=True)
    start_time: time
    end_time: time
    is_booked: bool = Field(default=False, index=True)
    is_blocked: bool = Field(default=False, index=True)
    block_reason: str | None = Field(default=None, max_length=200)
    appointment_id: int | None = Field(default=None, foreign_key="appointments.id")
    timezone: str = "UTC"
    created_at: datetime = Field(default_factory=utc_naive_now)
    updated_at: datetime = Field(default_factory=utc_naive_now)

    @property
    def status(self) -> str:
        if self.is_blocked:
            return "blocked"
        if self.is_booked:
            return "booked"
        return "available"
