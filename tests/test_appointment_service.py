import random
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from app.core.config import settings
from app.core.errors import InvalidTransition, NotFound, SlotConflict, ValidationError
from app.core.timeutils import overlaps
from app.models.appointment import Appointment, AppointmentFilters, AppointmentUpdate
from app.models.slot import Slot
from app.services import appointment_service
from app.services.appointment_service import (
    advance_appointment,
    book_appointment,
    cancel_appointment,
    get_appointment,
    query_appointments,
    update_appointment,
)
from app.services.availability_service import create_availability
from app.services.conflict_service import ConflictResult
from app.services.slot_service import list_available_slots, materialize_slots
from factories import booking, clock, monday_pattern


async def slots_of(session, appointment_id: int) -> list[str]:
    result = await session.execute(
        select(Slot).where(Slot.appointment_id == appointment_id).order_by(Slot.start_time)
    )
    return [s.start_time.strftime("%H:%M") for s in result.scalars().all()]


@pytest_asyncio.fixture
async def open_monday(session, people, monday):
    await create_availability(session, monday_pattern(people.provider.id))
    await materialize_slots(session, people.provider.id, monday, monday)
    return monday


@pytest.mark.asyncio
async def test_back_to_back_bookings_and_overlap(session, people, monday):
    pid, patient = people.provider.id, people.patient.id

    first = await book_appointment(session, booking(patient, pid, monday, "09:00", "09:30"))
    with pytest.raises(SlotConflict) as exc_info:
        await book_appointment(session, booking(people.other_patient.id, pid, monday, "09:15", "09:45"))
    second = await book_appointment(session, booking(people.other_patient.id, pid, monday, "09:30", "10:00"))

    assert exc_info.value.appointment_id == first.id
    assert first.status == "scheduled"
    assert first.reference.startswith("APT-")
    assert first.duration_minutes == 30
    assert second.id != first.id


@pytest.mark.asyncio
async def test_unique_start_index_rejects_a_missed_conflict(session, people, monday, monkeypatch):
    pid = people.provider.id
    first = await book_appointment(session, booking(people.patient.id, pid, monday, "09:00", "09:30"))
    await session.commit()

    async def report_free(*args, **kwargs):
        return ConflictResult(available=True)

    # the overlap query misses the first booking, as a racing transaction would
    monkeypatch.setattr(appointment_service, "check_availability", report_free)
    with pytest.raises(SlotConflict) as exc_info:
        await book_appointment(session, booking(people.other_patient.id, pid, monday, "09:00", "10:00"))
    assert exc_info.value.field == "start_time"
    await session.rollback()

    result = await session.execute(select(Appointment).where(Appointment.provider_id == pid))
    assert [a.id for a in result.scalars().all()] == [first.id]


@pytest.mark.asyncio
async def test_booking_other_provider_is_independent(session, people, monday):
    await book_appointment(session, booking(people.patient.id, people.provider.id, monday, "09:00", "10:00"))
    other = await book_appointment(
        session, booking(people.patient.id, people.other_provider.id, monday, "09:00", "10:00")
    )
    assert other.provider_id == people.other_provider.id


@pytest.mark.asyncio
async def test_booking_marks_covered_slots(session, people, open_monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, open_monday, "10:30", "11:30")
    )

    assert await slots_of(session, appointment.id) == ["10:30", "11:00"]


@pytest.mark.asyncio
async def test_booking_without_slots_is_allowed(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "15:00", "15:45")
    )
    assert appointment.duration_minutes == 45
    assert await slots_of(session, appointment.id) == []


@pytest.mark.asyncio
async def test_unknown_parties(session, people, monday):
    with pytest.raises(NotFound) as exc_info:
        await book_appointment(session, booking(999, people.provider.id, monday, "09:00", "09:30"))
    assert exc_info.value.field == "patient_id"

    with pytest.raises(NotFound) as exc_info:
        await book_appointment(session, booking(people.patient.id, people.other_patient.id, monday, "09:00", "09:30"))
    assert exc_info.value.field == "provider_id"


@pytest.mark.asyncio
async def test_past_booking_is_rejected(session, people):
    with pytest.raises(ValidationError) as exc_info:
        await book_appointment(
            session,
            booking(people.patient.id, people.provider.id, date.today() - timedelta(days=2), "09:00", "09:30"),
        )
    assert exc_info.value.field == "appointment_date"


@pytest.mark.asyncio
async def test_cancel_frees_slots_and_cannot_repeat(session, people, open_monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, open_monday, "09:00", "10:00")
    )
    assert len(await list_available_slots(session, people.provider.id, open_monday)) == 3

    cancelled = await cancel_appointment(session, appointment.id, "Feeling better", "patient")

    assert cancelled.status == "cancelled"
    assert cancelled.cancellation_reason == "Feeling better"
    assert cancelled.cancelled_by == "patient"
    assert cancelled.cancelled_at is not None
    assert await slots_of(session, appointment.id) == []
    assert len(await list_available_slots(session, people.provider.id, open_monday)) == 5

    with pytest.raises(InvalidTransition) as exc_info:
        await cancel_appointment(session, appointment.id, "Again", "patient")
    assert exc_info.value.appointment_id == appointment.id


@pytest.mark.asyncio
async def test_cancelled_time_can_be_booked_again(session, people, monday):
    first = await book_appointment(session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30"))
    await cancel_appointment(session, first.id, "Conflict at work", "patient")

    again = await book_appointment(
        session, booking(people.other_patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    assert again.status == "scheduled"


@pytest.mark.asyncio
async def test_cancel_requires_reason(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    with pytest.raises(ValidationError):
        await cancel_appointment(session, appointment.id, "", "patient")
    assert (await get_appointment(session, appointment.id)).status == "scheduled"


@pytest.mark.asyncio
async def test_full_visit_then_no_cancel(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    for target in ("confirmed", "checked-in", "in-exam", "completed"):
        appointment = await advance_appointment(session, appointment.id, target)
        assert appointment.status == target

    with pytest.raises(InvalidTransition):
        await cancel_appointment(session, appointment.id, "Too late", "provider")


@pytest.mark.asyncio
async def test_in_exam_can_still_be_cancelled(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    for target in ("confirmed", "checked-in", "in-exam"):
        await advance_appointment(session, appointment.id, target)
    cancelled = await cancel_appointment(session, appointment.id, "Emergency", "provider")
    assert cancelled.status == "cancelled"


@pytest.mark.asyncio
async def test_completing_early_depends_on_policy(session, people, monday, monkeypatch):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    monkeypatch.setattr(settings, "strict_lifecycle", True)
    with pytest.raises(InvalidTransition):
        await advance_appointment(session, appointment.id, "completed")

    monkeypatch.setattr(settings, "strict_lifecycle", False)
    completed = await advance_appointment(session, appointment.id, "completed")
    assert completed.status == "completed"


@pytest.mark.asyncio
async def test_advance_cannot_cancel(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    with pytest.raises(ValidationError) as exc_info:
        await advance_appointment(session, appointment.id, "cancelled")
    assert exc_info.value.field == "status"
    with pytest.raises(ValidationError):
        await advance_appointment(session, appointment.id, "teleported")


@pytest.mark.asyncio
async def test_no_show_frees_slots(session, people, open_monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, open_monday, "11:00", "11:30")
    )
    await advance_appointment(session, appointment.id, "no-show")
    assert await slots_of(session, appointment.id) == []
    assert len(await list_available_slots(session, people.provider.id, open_monday)) == 5


@pytest.mark.asyncio
async def test_reschedule_moves_slot_bookings(session, people, open_monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, open_monday, "09:00", "09:30")
    )

    moved = await update_appointment(
        session,
        appointment.id,
        AppointmentUpdate(start_time=clock("11:00"), end_time=clock("12:00"), notes="Bring scans"),
    )

    assert (moved.start_time, moved.end_time, moved.duration_minutes) == (clock("11:00"), clock("12:00"), 60)
    assert moved.notes == "Bring scans"
    assert await slots_of(session, appointment.id) == ["11:00", "11:30"]
    available = await list_available_slots(session, people.provider.id, open_monday)
    assert [s.start_time.strftime("%H:%M") for s in available] == ["09:00", "09:30", "10:30"]


@pytest.mark.asyncio
async def test_reschedule_into_conflict(session, people, monday):
    first = await book_appointment(session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30"))
    second = await book_appointment(
        session, booking(people.other_patient.id, people.provider.id, monday, "10:00", "10:30")
    )
    with pytest.raises(SlotConflict) as exc_info:
        await update_appointment(
            session, second.id, AppointmentUpdate(start_time=clock("09:15"), end_time=clock("09:45"))
        )
    assert exc_info.value.appointment_id == first.id


@pytest.mark.asyncio
async def test_reschedule_within_own_interval(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "10:00")
    )
    shifted = await update_appointment(
        session, appointment.id, AppointmentUpdate(start_time=clock("09:30"), end_time=clock("10:30"))
    )
    assert shifted.start_time == clock("09:30")


@pytest.mark.asyncio
async def test_started_appointments_are_frozen(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    await advance_appointment(session, appointment.id, "confirmed")
    await advance_appointment(session, appointment.id, "checked-in")
    with pytest.raises(InvalidTransition):
        await update_appointment(session, appointment.id, AppointmentUpdate(notes="late edit"))


@pytest.mark.asyncio
async def test_update_validates_details(session, people, monday):
    appointment = await book_appointment(
        session, booking(people.patient.id, people.provider.id, monday, "09:00", "09:30")
    )
    with pytest.raises(ValidationError) as exc_info:
        await update_appointment(session, appointment.id, AppointmentUpdate(appointment_mode="fax"))
    assert exc_info.value.field == "appointment_mode"


@pytest.mark.asyncio
async def test_random_requests_never_overlap(session, people, monday):
    rng = random.Random(20240601)
    pid = people.provider.id
    patients = [people.patient.id, people.other_patient.id]
    booked = 0
    for _ in range(60):
        start = 8 * 60 + 15 * rng.randrange(0, 32)
        length = rng.choice([15, 30, 45, 60])
        end = min(start + length, 17 * 60)
        data = booking(
            rng.choice(patients),
            pid,
            monday,
            f"{start // 60:02d}:{start % 60:02d}",
            f"{end // 60:02d}:{end % 60:02d}",
        )
        try:
            await book_appointment(session, data)
            booked += 1
        except SlotConflict:
            pass

    result = await session.execute(select(Appointment).where(Appointment.provider_id == pid))
    active = [a for a in result.scalars().all() if a.status not in ("cancelled", "no-show")]
    assert booked == len(active) > 0
    for i, a in enumerate(active):
        for b in active[i + 1:]:
            assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)


@pytest.mark.asyncio
async def test_query_filters_and_pages(session, people, monday):
    pid = people.provider.id
    first = await book_appointment(session, booking(people.patient.id, pid, monday, "11:00", "11:30"))
    await book_appointment(session, booking(people.patient.id, pid, monday, "09:00", "09:30"))
    await book_appointment(
        session,
        booking(people.other_patient.id, pid, monday + timedelta(days=1), "09:00", "09:30",
                appointment_type="follow-up", reason_for_visit="Blood pressure review"),
    )
    await cancel_appointment(session, first.id, "Travel", "patient")

    page1 = await query_appointments(session, AppointmentFilters(provider_id=pid, limit=2))
    assert (page1.total, page1.total_pages, page1.has_next, page1.has_prev) == (3, 2, True, False)
    assert [a.start_time.strftime("%H:%M") for a in page1.items] == ["09:00", "11:00"]

    page2 = await query_appointments(session, AppointmentFilters(provider_id=pid, limit=2, page=2))
    assert len(page2.items) == 1 and page2.has_prev and not page2.has_next

    mine = await query_appointments(session, AppointmentFilters(patient_id=people.patient.id))
    assert mine.total == 2

    cancelled = await query_appointments(session, AppointmentFilters(status="cancelled"))
    assert [a.id for a in cancelled.items] == [first.id]

    found = await query_appointments(session, AppointmentFilters(search="blood pressure"))
    assert found.total == 1 and found.items[0].appointment_type == "follow-up"

    by_reference = await query_appointments(session, AppointmentFilters(search=first.reference))
    assert [a.id for a in by_reference.items] == [first.id]

    empty = await query_appointments(session, AppointmentFilters(start_date=monday + timedelta(days=2)))
    assert (empty.total, empty.total_pages, empty.items) == (0, 0, [])


@pytest.mark.asyncio
async def test_query_rejects_bad_limit(session, people):
    with pytest.raises(ValidationError):
        await query_appointments(session, AppointmentFilters(limit=500))
