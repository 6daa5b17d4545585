"""
Redis client initialization and connection management.

Redis holds revoked session tokens (logout).
"""

import logging
import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    Resolved at call time so tests can swap the module-level client.
    """
    return redis_client


async def ping_redis() -> bool:
    """Test Redis connection; False when unreachable."""
    try:
        return await redis_client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
