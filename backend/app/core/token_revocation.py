"""
Session token revocation using Redis.

A logged-out token is blacklisted until it would have expired anyway.
"""

import logging
from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_BLACKLIST_PREFIX = "blacklist:token:"


async def revoke_token(token: str, username: str) -> bool:
    """
    Revoke a session token by adding it to the blacklist.

    Args:
        token: The JWT string to revoke
        username: Owner of the token, stored for audit purposes

    Returns:
        True if successfully revoked, False otherwise
    """
    try:
        ttl_seconds = settings.access_token_expire_minutes * 60
        await redis_module.redis_client.set(f"{TOKEN_BLACKLIST_PREFIX}{token}", username, ex=ttl_seconds)
        return True
    except Exception as exc:
        logger.error("Error revoking token for %s: %s", username, exc)
        return False


async def is_token_revoked(token: str) -> bool:
    """
    Check if a token has been revoked.

    If Redis is unreachable the request is allowed (availability over
    strict logout enforcement).
    """
    try:
        exists = await redis_module.redis_client.exists(f"{TOKEN_BLACKLIST_PREFIX}{token}")
        return exists > 0
    except Exception as exc:
        logger.warning("Error checking token revocation: %s", exc)
        return False
