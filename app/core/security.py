from jose import JWTError, jwt

from app.core.config import settings

CALLER_ROLES = ("patient", "provider", "admin")


def decode_access_token(token: str) -> tuple[str | None, str | None]:
    """Returns (subject, role) from an access token, or (None, None).

    Tokens are minted by the auth service with the same secret; this core
    only verifies signature, expiry and token type.
    """
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
    except JWTError:
        return None, None
    if payload.get("type") != "access":
        return None, None
    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or role not in CALLER_ROLES:
        return None, None
    return str(sub), role
