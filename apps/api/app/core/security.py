"""JWT helpers used to resolve the caller identity."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import UUID

from jose import JWTError, jwt

from ..domain.users import Identity, Role
from .config import get_settings

ALGORITHM = "HS256"


class InvalidTokenError(ValueError):
    """Raised when a bearer token cannot be turned into an identity."""


def create_access_token(
    user_id: UUID,
    role: Role | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token carrying the user id (``sub``) and role claims."""

    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: Dict[str, Any] = {"sub": str(user_id), "exp": expire}
    if role is not None:
        claims["role"] = role.value
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT access token and return its payload."""

    settings = get_settings()
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


def decode_identity(token: str) -> Identity:
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise InvalidTokenError("Invalid token") from exc
    subject = payload.get("sub")
    if subject is None:
        raise InvalidTokenError("Token has no subject")
    try:
        user_id = UUID(subject)
    except ValueError as exc:
        raise InvalidTokenError("Token subject is not a user id") from exc
    raw_role = payload.get("role")
    try:
        role = Role(raw_role) if raw_role else None
    except ValueError:
        # Unknown roles are treated like a base role by the limiter.
        role = None
    return Identity(user_id=user_id, role=role)
