from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound
from app.models.user import User


async def _find_with_role(session: AsyncSession, user_id: int, role: str) -> User | None:
    result = await session.execute(
        select(User).where(User.id == user_id, User.role == role, User.is_active == True)  # noqa: E712
    )
    return result.scalar_one_or_none()


async def find_patient(session: AsyncSession, patient_id: int) -> User:
    patient = await _find_with_role(session, patient_id, "patient")
    if not patient:
        raise NotFound("Patient not found", field="patient_id")
    return patient


async def find_provider(session: AsyncSession, provider_id: int) -> User:
    provider = await _find_with_role(session, provider_id, "provider")
    if not provider:
        raise NotFound("Provider not found", field="provider_id")
    return provider
