"""
Authentication for staff terminals.

Tokens are issued by the identity service; this module verifies them,
checks the Redis revocation store, and builds the ActorContext that every
service operation receives.
"""

from __future__ import annotations

import hashlib
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import jwt
import redis
from fastapi import Depends, Header, HTTPException, status

from shared.config.constants import Roles
from shared.config.logging import get_logger
from shared.config.settings import JWT_AUDIENCE, JWT_ISSUER, JWT_SECRET, settings
from shared.security.context import ActorContext
from shared.security.token_blacklist import check_token_validity

logger = get_logger(__name__)

REQUIRED_CLAIMS = ("sub", "restaurant_id", "role", "jti", "iat")


def _hash_jti(jti: str) -> str:
    """First 8 characters of the SHA256 of a jti, for logs."""
    return hashlib.sha256(jti.encode()).hexdigest()[:8]


def sign_jwt(payload: dict[str, Any], ttl_seconds: int | None = None) -> str:
    """
    Sign an access token. Used by the identity service's shared tooling and tests;
    the order engine itself only verifies.
    """
    if ttl_seconds is None:
        ttl_seconds = settings.jwt_max_token_lifetime_hours * 60 * 60
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


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def verify_jwt(token: str, check_revocation: bool = True) -> dict[str, Any]:
    """
    Verify and decode a staff token.

    Raises:
        HTTPException 401: invalid, expired, malformed or revoked token.
        HTTPException 503: revocation store unreachable (fail closed).
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
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError as e:
        # Log the real reason, return a generic message
        logger.warning("JWT validation failed", error=str(e))
        raise _unauthorized("Invalid token")

    missing = [claim for claim in REQUIRED_CLAIMS if claim not in payload]
    if missing:
        raise _unauthorized(f"Invalid token: missing {', '.join(missing)} claim")

    try:
        int(payload["sub"])
    except (ValueError, TypeError):
        raise _unauthorized("Invalid token: malformed subject claim")

    if not isinstance(payload["restaurant_id"], int):
        raise _unauthorized("Invalid token: malformed restaurant_id claim")

    if payload["role"] not in Roles.ALL:
        raise _unauthorized("Invalid token: unknown role")

    if check_revocation:
        _check_revocation(payload)

    return payload


def _check_revocation(payload: dict[str, Any]) -> None:
    token_jti = str(payload["jti"])
    staff_id = int(payload["sub"])
    issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)

    try:
        valid = check_token_validity(token_jti, staff_id, issued_at)
    except redis.RedisError as e:
        logger.error(
            "Error checking token revocation - denying access",
            jti_hash=_hash_jti(token_jti),
            error=str(e),
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service temporarily unavailable. Please try again.",
        )

    if not valid:
        logger.warning("Revoked token used", jti_hash=_hash_jti(token_jti), staff_id=staff_id)
        raise _unauthorized("Token has been revoked")


def get_bearer_token(authorization: str | None) -> str:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        raise _unauthorized("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise _unauthorized("Invalid Authorization header format. Expected: Bearer <token>")
    return authorization.split(" ", 1)[1].strip()


def current_actor(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> ActorContext:
    """
    FastAPI dependency resolving the caller.

        @router.post("/orders/{order_id}/settle")
        def settle(order_id: int, ctx: ActorContext = Depends(current_actor)):
            ...
    """
    token = get_bearer_token(authorization)
    return ActorContext.from_claims(verify_jwt(token))


def require_roles(*allowed: str):
    """
    Dependency factory restricting an endpoint to some roles.

        @router.post("/payouts", dependencies=[Depends(require_roles(*CASH_HANDLING_ROLES))])
    """

    def _dependency(ctx: ActorContext = Depends(current_actor)) -> ActorContext:
        if not ctx.has_any_role(allowed):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required role: one of {sorted(allowed)}",
            )
        return ctx

    return _dependency
