from datetime import UTC, date, datetime, time, timedelta

from jose import jwt

from app.core.config import settings
from app.models.appointment import AppointmentCreate
from app.models.availability import AvailabilityCreate, BreakInterval
from app.models.user import User


def clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def monday_pattern(provider_id: int, **overrides) -> AvailabilityCreate:
    """Mondays 09:00-12:00, 30 minute slots, break 10:00-10:30."""
    values = dict(
        provider_id=provider_id,
        is_recurring=True,
        day_of_week=1,
        start_time=time(9, 0),
        end_time=time(12, 0),
        slot_duration=30,
        break_intervals=[BreakInterval(start_time=time(10, 0), end_time=time(10, 30))],
    )
    values.update(overrides)
    return AvailabilityCreate(**values)


def booking(patient_id: int, provider_id: int, day: date, start: str, end: str, **overrides) -> AppointmentCreate:
    values = dict(
        patient_id=patient_id,
        provider_id=provider_id,
        appointment_date=day,
        start_time=clock(start),
        end_time=clock(end),
        appointment_type="consultation",
        reason_for_visit="Persistent cough",
    )
    values.update(overrides)
    return AppointmentCreate(**values)


def make_token(user_id: int, role: str, token_type: str = "access", expires_in: int = 900) -> str:
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": token_type,
        "exp": datetime.now(UTC) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.id, user.role)}"}
