"""
Security module: token verification, Redis revocation store, caller context,
rate limiting.
"""

from shared.security.context import ActorContext
from shared.security.auth import (
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_actor,
    require_roles,
)
from shared.security.token_blacklist import (
    revoke_token,
    revoke_all_staff_tokens,
    check_token_validity,
)
from shared.security.rate_limit import limiter

__all__ = [
    "ActorContext",
    # auth
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_actor",
    "require_roles",
    # revocation
    "revoke_token",
    "revoke_all_staff_tokens",
    "check_token_validity",
    # rate limiting
    "limiter",
]
