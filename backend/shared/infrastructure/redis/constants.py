"""
Redis key prefixes.
"""

# Revocation of a single token, keyed by jti; TTL = remaining token lifetime
PREFIX_AUTH_BLACKLIST = "auth:token:blacklist:"
# Revocation of every token a staff member holds; value = revocation timestamp
PREFIX_AUTH_STAFF_REVOKE = "auth:staff:revoked:"
