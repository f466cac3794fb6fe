"""Redis client backing the user session store.

Sessions are stored by the identity gateway under
`{session_key_prefix}:{user_id}:{session_id}`. Suspending an account purges
every key under the user's prefix.

Usage:
    from authority_exchange.infrastructure.redis_client import get_redis, close_redis

    redis = get_redis()
    revoker = RedisSessionRevoker(redis)
    await revoker.revoke_all_sessions(user_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import redis.asyncio as aioredis

from authority_exchange.config import get_settings
from authority_exchange.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None


async def init_redis() -> aioredis.Redis:
    """Initialize and return the Redis client. Called during app startup."""
    global _redis_client
    settings = get_settings()
    _redis_client = aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
    )
    # Verify connectivity
    await _redis_client.ping()
    logger.info("redis.connected", url=settings.redis_url)
    return _redis_client


def get_redis() -> aioredis.Redis:
    """Return the Redis client singleton. Must call init_redis() first."""
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection. Called during app shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        logger.info("redis.disconnected")
        _redis_client = None


# --- Session Revocation ---


class RedisSessionRevoker:
    """SessionRevoker that deletes a user's session keys from Redis."""

    def __init__(self, redis: aioredis.Redis, key_prefix: str | None = None) -> None:
        self._redis = redis
        self._key_prefix = key_prefix or get_settings().session_key_prefix

    def _pattern(self, user_id: uuid.UUID) -> str:
        return f"{self._key_prefix}:{user_id}:*"

    async def revoke_all_sessions(self, user_id: uuid.UUID) -> int:
        """Delete every session key of the user and return how many were removed."""
        keys = [key async for key in self._redis.scan_iter(match=self._pattern(user_id))]
        removed = await self._redis.delete(*keys) if keys else 0
        logger.info("session.revoked", user_id=str(user_id), sessions=removed)
        return removed
