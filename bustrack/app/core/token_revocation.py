"""
Token Revocation System using Redis.

Implements token blacklisting so that logging out invalidates a JWT
immediately instead of at expiry.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from redis.exceptions import RedisError

import bustrack.app.core.redis_client as redis_client_module
from bustrack.app.core.config import settings

logger = logging.getLogger("bustrack.auth")

# Redis key prefix for blacklisted tokens
TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


def _remaining_ttl(expires_at: Optional[int]) -> int:
    if expires_at is None:
        return settings.access_token_expire_minutes * 60
    remaining = int(expires_at - datetime.now(timezone.utc).timestamp())
    return max(remaining, 1)


async def revoke_token(token: str, user_id: str, expires_at: Optional[int] = None) -> bool:
    """
    Revoke a specific JWT token by adding it to the blacklist.

    Args:
        token: The JWT token string to revoke
        user_id: User ID who owns the token
        expires_at: The token's `exp` claim; the blacklist entry lives until then

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        await redis_client_module.redis_client.set(key, str(user_id), ex=_remaining_ttl(expires_at))
        return True
    except RedisError as e:
        logger.error("Error revoking token for user %s: %s", user_id, e)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    Args:
        token: JWT token string to check

    Returns:
        True if token is revoked, False otherwise
    """
    try:
        key = f"{TOKEN_BLACKLIST_PREFIX}{token}"
        exists = await redis_client_module.redis_client.exists(key)
        return exists > 0
    except RedisError as e:
        # Fail open: a Redis outage must not lock every student out of the map
        logger.error("Error checking token revocation: %s", e)
        return False
