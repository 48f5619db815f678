from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, ensure_provider_access, get_current_caller, get_session, require_roles
from app.api.schemas.availability import AvailabilityResponse
from app.api.schemas.slot import (
    BlockRequest,
    BlockResponse,
    MaterializeRequest,
    MaterializeResponse,
    SlotResponse,
    SlotsForDay,
    UnblockResponse,
)
from app.services.availability_service import list_provider_availability
from app.services.identity_service import find_provider
from app.services.slot_service import (
    block_slots,
    list_available_slots,
    list_slots,
    materialize_slots,
    unblock_slots,
)

router = APIRouter(prefix="/providers", tags=["slots"])

manager = require_roles("provider", "admin")


@router.get("/{provider_id}/availability", response_model=list[AvailabilityResponse])
async def provider_availability(
    provider_id: int,
    active_only: bool = Query(False, alias="activeOnly"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> list[AvailabilityResponse]:
    await find_provider(session, provider_id)
    patterns = await list_provider_availability(session, provider_id, active_only=active_only)
    return [AvailabilityResponse.model_validate(p) for p in patterns]


@router.post("/{provider_id}/slots/materialize", response_model=MaterializeResponse)
async def materialize(
    provider_id: int,
    body: MaterializeRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> MaterializeResponse:
    ensure_provider_access(caller, provider_id)
    result = await materialize_slots(session, provider_id, body.start_date, body.end_date)
    return MaterializeResponse(
        provider_id=provider_id,
        start_date=body.start_date,
        end_date=body.end_date,
        created=result.created,
        skipped=result.skipped,
    )


@router.get("/{provider_id}/slots", response_model=SlotsForDay)
async def day_slots(
    provider_id: int,
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> SlotsForDay:
    """Every slot of the day with its status (available, booked or blocked)."""
    ensure_provider_access(caller, provider_id)
    slots = await list_slots(session, provider_id, date_param)
    return SlotsForDay(
        provider_id=provider_id,
        date=date_param,
        slots=[SlotResponse.model_validate(s) for s in slots],
    )


@router.get("/{provider_id}/available-slots", response_model=SlotsForDay)
async def available_slots(
    provider_id: int,
    date_param: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
) -> SlotsForDay:
    await find_provider(session, provider_id)
    slots = await list_available_slots(session, provider_id, date_param)
    return SlotsForDay(
        provider_id=provider_id,
        date=date_param,
        slots=[SlotResponse.model_validate(s) for s in slots],
    )


@router.post("/{provider_id}/slots/block", response_model=BlockResponse)
async def block(
    provider_id: int,
    body: BlockRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> BlockResponse:
    ensure_provider_access(caller, provider_id)
    result = await block_slots(session, provider_id, body.date, body.start_time, body.end_time, body.reason)
    return BlockResponse(
        blocked=[SlotResponse.model_validate(s) for s in result.blocked],
        skipped_booked=[SlotResponse.model_validate(s) for s in result.skipped_booked],
    )


@router.post("/{provider_id}/slots/unblock", response_model=UnblockResponse)
async def unblock(
    provider_id: int,
    body: BlockRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> UnblockResponse:
    ensure_provider_access(caller, provider_id)
    released = await unblock_slots(session, provider_id, body.date, body.start_time, body.end_time)
    return UnblockResponse(unblocked=[SlotResponse.model_validate(s) for s in released])
