"""Resolve the acting user for a request.

Credentials are checked in this order: ``X-API-Key``, then a bearer JWT. With
no API key configured and no credentials at all the caller is an anonymous
``employee``, which can read but never mutate.
"""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import EMPLOYEE_ROLE, Actor, decode_token, ensure_can_mutate
from ..middlewares import principal_ctx_var

ANONYMOUS_USER = "anonymous"


def _unauthorized(detail: str = "Unauthorized") -> None:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_actor(request: Request, actor: Actor, scheme: str) -> Actor:
    principal_ctx_var.set(f"{scheme}:{actor.user_id}")
    request.state.actor = actor
    return actor


async def get_actor(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Actor:
    api_key = settings.API_KEY
    provided_key = (x_api_key or "").strip()
    if api_key and provided_key and hmac.compare_digest(api_key, provided_key):
        actor = Actor(user_id=settings.API_KEY_SUBJECT, role=settings.API_KEY_ROLE)
        return _set_actor(request, actor, "api_key")

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type="access")
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            request.state.token_payload = payload
            return _set_actor(request, Actor(user_id=payload.sub, role=payload.role), "jwt")

    if not api_key and not authorization and not provided_key:
        return _set_actor(request, Actor(user_id=ANONYMOUS_USER, role=EMPLOYEE_ROLE), "open")

    if provided_key:
        _unauthorized("Invalid API key")
    _unauthorized("Authorization required")


async def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Gate for admin-only views; raises the domain ``Forbidden``."""

    return ensure_can_mutate(actor)
