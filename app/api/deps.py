from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.db import get_session
from app.core.errors import Forbidden
from app.core.security import decode_access_token

__all__ = ["Caller", "get_current_caller", "get_session", "require_roles", "ensure_provider_access"]

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Caller:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    subject, role = decode_access_token(credentials.credentials)
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        uid = int(subject)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(id=uid, role=role)


def require_roles(*roles: str):
    """Dependency factory: the caller must hold one of ``roles``."""

    async def checker(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in roles:
            raise Forbidden(f"This action requires one of the roles: {', '.join(roles)}")
        return caller

    return checker


def ensure_provider_access(caller: Caller, provider_id: int) -> None:
    """Providers manage only their own schedule; admins manage any."""
    if caller.is_admin:
        return
    if caller.role == "provider" and caller.id == provider_id:
        return
    raise Forbidden("Not allowed to manage this provider's schedule", field="provider_id")
