from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import Caller, ensure_provider_access, get_session, require_roles
from app.api.schemas.availability import (
    AvailabilityDeleted,
    AvailabilityRequest,
    AvailabilityResponse,
    BulkAvailabilityRequest,
)
from app.services.availability_service import (
    create_availability,
    delete_availability,
    get_availability,
    replace_provider_availability,
    update_availability,
)

router = APIRouter(prefix="/availability", tags=["availability"])

manager = require_roles("provider", "admin")


@router.post("", response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
async def create_pattern(
    body: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> AvailabilityResponse:
    ensure_provider_access(caller, body.provider_id)
    pattern = await create_availability(session, body.to_create())
    return AvailabilityResponse.model_validate(pattern)


@router.post("/bulk", response_model=list[AvailabilityResponse], status_code=status.HTTP_201_CREATED)
async def replace_patterns(
    body: BulkAvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> list[AvailabilityResponse]:
    """Replace every pattern of the provider with the given set (1..7 items)."""
    ensure_provider_access(caller, body.provider_id)
    patterns = await replace_provider_availability(
        session, body.provider_id, [item.to_create() for item in body.availabilities]
    )
    return [AvailabilityResponse.model_validate(p) for p in patterns]


@router.get("/{availability_id}", response_model=AvailabilityResponse)
async def read_pattern(
    availability_id: int,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> AvailabilityResponse:
    pattern = await get_availability(session, availability_id)
    ensure_provider_access(caller, pattern.provider_id)
    return AvailabilityResponse.model_validate(pattern)


@router.put("/{availability_id}", response_model=AvailabilityResponse)
async def update_pattern(
    availability_id: int,
    body: AvailabilityRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> AvailabilityResponse:
    current = await get_availability(session, availability_id)
    ensure_provider_access(caller, current.provider_id)
    pattern = await update_availability(session, availability_id, body.to_create())
    return AvailabilityResponse.model_validate(pattern)


@router.delete("/{availability_id}", response_model=AvailabilityDeleted)
async def delete_pattern(
    availability_id: int,
    reconcile: str = Query("release_unbooked"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(manager),
) -> AvailabilityDeleted:
    """Delete a pattern. ``reconcile=keep`` leaves its materialized slots in place."""
    current = await get_availability(session, availability_id)
    ensure_provider_access(caller, current.provider_id)
    removed = await delete_availability(session, availability_id, reconcile=reconcile)
    return AvailabilityDeleted(id=availability_id, reconcile=reconcile, removed_slots=removed)
