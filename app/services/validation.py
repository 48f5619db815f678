"""Cross-field validation, one function per operation.

Each function returns a ValidationResult instead of raising, so callers
decide when to reject; services call ``raise_for_errors()`` before any write.
Format checks (HH:MM, ISO dates, types) happen earlier in the API schemas.
"""
from datetime import date, time

from app.core.errors import ValidationResult
from app.core.timeutils import minutes_between
from app.models.appointment import (
    APPOINTMENT_MODES,
    APPOINTMENT_TYPES,
    CANCELLED_BY,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStatus,
)
from app.models.availability import AvailabilityCreate

MIN_SLOT_MINUTES = 15
MAX_SLOT_MINUTES = 120
MIN_APPOINTMENT_MINUTES = 15
MAX_APPOINTMENT_MINUTES = 480
MINUTE_INCREMENT = 15


def _check_window(result: ValidationResult, start: time, end: time, prefix: str = "") -> bool:
    if start >= end:
        result.add(f"{prefix}end_time", "End time must be after start time")
        return False
    return True


def _check_text(result: ValidationResult, field: str, value: str | None, max_length: int, required: bool = False) -> None:
    if value is None or not value.strip():
        if required:
            result.add(field, f"{field} is required")
        return
    if len(value) > max_length:
        result.add(field, f"{field} cannot exceed {max_length} characters")


def validate_availability(data: AvailabilityCreate, prefix: str = "") -> ValidationResult:
    result = ValidationResult()
    if data.is_recurring:
        if data.day_of_week is None:
            result.add(f"{prefix}day_of_week", "Day of week is required for a recurring pattern")
        elif not 0 <= data.day_of_week <= 6:
            result.add(f"{prefix}day_of_week", "Day of week must be between 0 and 6")
        if data.specific_date is not None:
            result.add(f"{prefix}specific_date", "Specific date is not allowed for a recurring pattern")
    else:
        if data.specific_date is None:
            result.add(f"{prefix}specific_date", "Specific date is required for a one-off pattern")
        if data.day_of_week is not None:
            result.add(f"{prefix}day_of_week", "Day of week is not allowed for a one-off pattern")

    window_ok = _check_window(result, data.start_time, data.end_time, prefix)

    duration = data.slot_duration
    if not MIN_SLOT_MINUTES <= duration <= MAX_SLOT_MINUTES:
        result.add(
            f"{prefix}slot_duration",
            f"Slot duration must be between {MIN_SLOT_MINUTES} and {MAX_SLOT_MINUTES} minutes",
        )
    elif duration % MINUTE_INCREMENT:
        result.add(f"{prefix}slot_duration", "Slot duration must be in 15-minute increments")
    elif window_ok and duration > minutes_between(data.start_time, data.end_time):
        result.add(f"{prefix}slot_duration", "Slot duration is longer than the availability window")

    previous_end: time | None = None
    # errors point at the caller's own index, checks run in start order
    ordered = sorted(enumerate(data.break_intervals), key=lambda pair: pair[1].start_time)
    for index, brk in ordered:
        field = f"{prefix}break_intervals[{index}]"
        if brk.start_time >= brk.end_time:
            result.add(field, "Break end time must be after its start time")
            continue
        if window_ok and (brk.start_time < data.start_time or brk.end_time > data.end_time):
            result.add(field, "Break must fall inside the availability window")
        if previous_end is not None and brk.start_time < previous_end:
            result.add(field, "Breaks must not overlap each other")
        previous_end = brk.end_time

    if not data.timezone or not data.timezone.strip():
        result.add(f"{prefix}timezone", "Timezone is required")
    elif len(data.timezone) > 64:
        result.add(f"{prefix}timezone", "Timezone label is too long")
    return result


def validate_bulk_availability(
    provider_id: int, items: list[AvailabilityCreate], max_items: int
) -> ValidationResult:
    result = ValidationResult()
    if not items:
        result.add("availabilities", "At least one availability must be provided")
        return result
    if len(items) > max_items:
        result.add("availabilities", f"Maximum {max_items} availabilities allowed")
        return result
    for index, item in enumerate(items):
        prefix = f"availabilities[{index}]."
        if item.provider_id != provider_id:
            result.add(f"{prefix}provider_id", "Every availability must belong to the same provider")
        result.errors.extend(validate_availability(item, prefix).errors)
    return result


def validate_booking(data: AppointmentCreate, today: date) -> ValidationResult:
    result = ValidationResult()
    if data.appointment_date < today:
        result.add("appointment_date", "Appointment date cannot be in the past")
    if _check_window(result, data.start_time, data.end_time):
        _check_duration(result, data.start_time, data.end_time, data.duration_minutes)
    if data.patient_id == data.provider_id:
        result.add("patient_id", "Patient and provider must be different people")
    if data.appointment_type not in APPOINTMENT_TYPES:
        result.add("appointment_type", f"Appointment type must be one of: {', '.join(APPOINTMENT_TYPES)}")
    if data.appointment_mode not in APPOINTMENT_MODES:
        result.add("appointment_mode", f"Appointment mode must be one of: {', '.join(APPOINTMENT_MODES)}")
    _check_text(result, "reason_for_visit", data.reason_for_visit, 500, required=True)
    _check_text(result, "notes", data.notes, 1000)
    return result


def _check_duration(result: ValidationResult, start: time, end: time, declared: int | None) -> None:
    minutes = minutes_between(start, end)
    if declared is not None and declared != minutes:
        result.add("duration_minutes", "Duration must match the time between start and end")
    elif not MIN_APPOINTMENT_MINUTES <= minutes <= MAX_APPOINTMENT_MINUTES:
        result.add(
            "duration_minutes",
            f"Duration must be between {MIN_APPOINTMENT_MINUTES} and {MAX_APPOINTMENT_MINUTES} minutes",
        )
    elif minutes % MINUTE_INCREMENT:
        result.add("duration_minutes", "Duration must be in 15-minute increments")


def validate_reschedule(appointment_date: date, start: time, end: time, today: date) -> ValidationResult:
    result = ValidationResult()
    if appointment_date < today:
        result.add("appointment_date", "Appointment date cannot be in the past")
    if _check_window(result, start, end):
        _check_duration(result, start, end, None)
    return result


def validate_details(
    appointment_type: str | None,
    appointment_mode: str | None,
    reason_for_visit: str | None,
    notes: str | None,
    provider_notes: str | None,
) -> ValidationResult:
    result = ValidationResult()
    if appointment_type is not None and appointment_type not in APPOINTMENT_TYPES:
        result.add("appointment_type", f"Appointment type must be one of: {', '.join(APPOINTMENT_TYPES)}")
    if appointment_mode is not None and appointment_mode not in APPOINTMENT_MODES:
        result.add("appointment_mode", f"Appointment mode must be one of: {', '.join(APPOINTMENT_MODES)}")
    if reason_for_visit is not None:
        _check_text(result, "reason_for_visit", reason_for_visit, 500, required=True)
    _check_text(result, "notes", notes, 1000)
    _check_text(result, "provider_notes", provider_notes, 1000)
    return result


def validate_cancellation(reason: str | None, cancelled_by: str | None) -> ValidationResult:
    result = ValidationResult()
    _check_text(result, "cancellation_reason", reason, 500, required=True)
    if cancelled_by not in CANCELLED_BY:
        result.add("cancelled_by", f"Cancelled by must be one of: {', '.join(CANCELLED_BY)}")
    return result


def validate_status(target: str) -> ValidationResult:
    result = ValidationResult()
    if target not in {s.value for s in AppointmentStatus}:
        result.add("status", f"Unknown appointment status '{target}'")
    return result


def validate_date_range(start: date, end: date, max_days: int) -> ValidationResult:
    result = ValidationResult()
    if start > end:
        result.add("end_date", "End date must not be before start date")
    elif (end - start).days + 1 > max_days:
        result.add("end_date", f"Date range cannot exceed {max_days} days")
    return result


def validate_block_window(start: time, end: time, reason: str | None) -> ValidationResult:
    result = ValidationResult()
    _check_window(result, start, end)
    _check_text(result, "reason", reason, 200)
    return result


def validate_filters(filters: AppointmentFilters, max_page_size: int) -> ValidationResult:
    result = ValidationResult()
    if filters.status is not None:
        result.errors.extend(validate_status(filters.status).errors)
    if filters.appointment_type is not None and filters.appointment_type not in APPOINTMENT_TYPES:
        result.add("appointment_type", f"Appointment type must be one of: {', '.join(APPOINTMENT_TYPES)}")
    if filters.start_date and filters.end_date and filters.start_date > filters.end_date:
        result.add("end_date", "End date must not be before start date")
    if filters.page < 1:
        result.add("page", "Page must be 1 or greater")
    if not 1 <= filters.limit <= max_page_size:
        result.add("limit", f"Limit must be between 1 and {max_page_size}")
    if filters.search is not None and len(filters.search) > 100:
        result.add("search", "Search cannot exceed 100 characters")
    return result
