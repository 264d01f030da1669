from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from .config import settings
from .errors import Forbidden

ADMIN_ROLE = "admin"
IT_ADMIN_ROLE = "it_admin"
EMPLOYEE_ROLE = "employee"


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller: who is acting and with which role."""

    user_id: str
    role: str = EMPLOYEE_ROLE

    @property
    def can_mutate(self) -> bool:
        return (self.role or "").lower() in settings.mutating_roles


def ensure_can_mutate(actor: Actor | None) -> Actor:
    """Raise ``Forbidden`` unless the actor may change assets or assignments."""

    if actor is None or not actor.user_id:
        raise Forbidden("An authenticated actor is required")
    if not actor.can_mutate:
        raise Forbidden(f"Role '{actor.role}' may not modify assets or assignments")
    return actor


class TokenPayload(BaseModel):
    sub: str
    exp: datetime
    iat: datetime
    typ: str
    aud: str
    iss: str
    role: str = EMPLOYEE_ROLE


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def issue_access_token(subject: str, role: str, expires_delta: timedelta | None = None) -> str:
    now = _now()
    delta = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + delta).timestamp()),
        "typ": "access",
        "aud": settings.JWT_AUDIENCE,
        "iss": settings.JWT_ISSUER,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, *, verify_type: str | None = "access") -> TokenPayload:
    try:
        decoded = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    try:
        payload = TokenPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ValueError("Invalid token payload") from exc
    if verify_type and payload.typ != verify_type:
        raise ValueError("Invalid token type")
    return payload
