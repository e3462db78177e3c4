"""
Staff authentication.

Tokens are issued by the separate auth service; this module only verifies
them and turns the claims into a restaurant-scoped context. Claims:
``sub`` (user id), ``restaurant_id`` (int) and ``role`` (admin, reception,
kitchen, captain).
"""

from __future__ import annotations

import time
import uuid
from typing import Any

import jwt
from fastapi import Header

from shared.config.constants import Roles
from shared.config.settings import JWT_SECRET, JWT_ISSUER, JWT_AUDIENCE
from shared.config.logging import get_logger
from shared.utils.exceptions import (
    ForbiddenError,
    InsufficientRoleError,
    UnauthorizedError,
)

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 8 * 60 * 60


def sign_jwt(payload: dict[str, Any], ttl_seconds: int = DEFAULT_TTL_SECONDS) -> str:
    """
    Sign a staff token with the configured secret, issuer and audience.

    Used by the dev CLI and tests; production tokens come from the auth service.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, JWT_SECRET, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a staff token.

    Raises:
        UnauthorizedError: If the token is invalid, expired or lacks the
            restaurant/role claims.
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        # The library message may describe internals; keep it in the log only
        raise UnauthorizedError("Invalid token", error=str(e))

    if "sub" not in payload:
        raise UnauthorizedError("Invalid token: missing subject claim")

    restaurant_id = payload.get("restaurant_id")
    if not isinstance(restaurant_id, int) or isinstance(restaurant_id, bool) or restaurant_id <= 0:
        raise UnauthorizedError("Invalid token: missing restaurant_id claim")

    if payload.get("role") not in Roles.STAFF:
        raise ForbiddenError(
            "use this endpoint (requires restaurant or staff authentication)",
            role=payload.get("role"),
        )

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise UnauthorizedError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not token.strip():
        raise UnauthorizedError("Invalid Authorization header format. Expected: Bearer <token>")
    return token.strip()


def current_staff_context(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> dict[str, Any]:
    """
    FastAPI dependency returning the verified staff context.

    Usage:
        @router.get("/orders/active")
        def active(ctx: dict = Depends(current_staff_context)):
            restaurant_id = ctx["restaurant_id"]

    Returns:
        Dict with: sub, restaurant_id, role
    """
    payload = verify_jwt(get_bearer_token(authorization))
    return {
        "sub": str(payload["sub"]),
        "restaurant_id": payload["restaurant_id"],
        "role": payload["role"],
    }


def require_roles(ctx: dict[str, Any], allowed: list[str] | frozenset[str]) -> None:
    """Raise ``InsufficientRoleError`` unless the caller has one of ``allowed``."""
    if ctx.get("role") not in allowed:
        raise InsufficientRoleError(sorted(allowed), role=ctx.get("role"))


def require_restaurant(ctx: dict[str, Any], restaurant_id: int) -> None:
    """Tenant isolation: staff may only act on their own restaurant."""
    if ctx.get("restaurant_id") != restaurant_id:
        raise ForbiddenError(
            "access this restaurant",
            restaurant_id=restaurant_id,
            caller_restaurant_id=ctx.get("restaurant_id"),
        )
