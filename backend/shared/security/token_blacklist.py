"""
Token revocation store backed by Redis.

Revocations must hold across every API process and survive restarts, so
they live in Redis and never in process memory. Keys expire together with
the tokens they revoke.

Verification fails closed: if Redis cannot answer, the request is refused
(see shared.security.auth).
"""

from datetime import datetime, timedelta, timezone

import redis

from shared.config.logging import audit_token_event, get_logger, mask_jti
from shared.config.settings import settings
from shared.infrastructure.events import get_redis_sync_client
from shared.infrastructure.redis.constants import (
    PREFIX_AUTH_BLACKLIST,
    PREFIX_AUTH_STAFF_REVOKE,
)

logger = get_logger(__name__)


def revoke_token(token_jti: str, expires_at: datetime) -> bool:
    """
    Revoke a single token until it would have expired anyway.

    Returns True if the revocation is stored (or the token is already expired).
    """
    ttl_seconds = int((expires_at - datetime.now(timezone.utc)).total_seconds())
    if ttl_seconds <= 0:
        logger.debug("Token already expired, skipping revocation", jti=mask_jti(token_jti))
        return True

    try:
        get_redis_sync_client().setex(f"{PREFIX_AUTH_BLACKLIST}{token_jti}", ttl_seconds, "1")
    except redis.RedisError as e:
        logger.error("Failed to revoke token", jti=mask_jti(token_jti), error=str(e))
        return False

    audit_token_event("REVOKED", jti=token_jti, ttl_seconds=ttl_seconds)
    return True


def revoke_all_staff_tokens(staff_id: int) -> bool:
    """
    Revoke every token issued to a staff member before now
    (role change, deactivation, lost device).
    """
    ttl_seconds = int(timedelta(hours=settings.jwt_max_token_lifetime_hours).total_seconds())
    now = datetime.now(timezone.utc)
    try:
        get_redis_sync_client().setex(
            f"{PREFIX_AUTH_STAFF_REVOKE}{staff_id}", ttl_seconds, now.isoformat()
        )
    except redis.RedisError as e:
        logger.error("Failed to revoke staff tokens", staff_id=staff_id, error=str(e))
        return False

    audit_token_event("STAFF_REVOKED", staff_id=staff_id)
    return True


def check_token_validity(token_jti: str, staff_id: int, issued_at: datetime) -> bool:
    """
    Combined check in one round-trip: single-token revocation and staff-wide
    revocation.

    Returns True if the token is still valid, False if revoked. Redis errors
    propagate so the caller can fail closed.
    """
    client = get_redis_sync_client()
    with client.pipeline(transaction=False) as pipe:
        pipe.exists(f"{PREFIX_AUTH_BLACKLIST}{token_jti}")
        pipe.get(f"{PREFIX_AUTH_STAFF_REVOKE}{staff_id}")
        blacklisted, revoked_at = pipe.execute()

    if blacklisted:
        return False
    if revoked_at and issued_at < datetime.fromisoformat(revoked_at):
        return False
    return True
