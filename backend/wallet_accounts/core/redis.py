"""Redis connection and key-value utilities.

Redis client is created lazily to avoid import-time side effects.
"""

import json
from typing import Any, Optional

import redis.asyncio as redis
import structlog


logger = structlog.get_logger()

# Redis client - initialized lazily
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get Redis client instance.

    Client is created on first access, not at import time.
    """
    global _redis_client
    if _redis_client is None:
        from wallet_accounts.core.config import get_settings
        settings = get_settings()
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


class RedisStore:
    """JSON key-value store on top of Redis.

    Values are serialized with json; keys are namespaced with a prefix so
    several deployments can share one Redis database.
    """

    def __init__(self, prefix: str = "wallet_accounts", client: Optional[redis.Redis] = None):
        self.prefix = prefix
        self._client = client

    def _key(self, key: str) -> str:
        """Generate prefixed key."""
        return f"{self.prefix}:{key}"

    async def _redis(self) -> redis.Redis:
        if self._client is not None:
            return self._client
        return await get_redis()

    async def get(self, key: str) -> Optional[Any]:
        """Get a value, or None when the key is absent."""
        client = await self._redis()
        value = await client.get(self._key(key))
        if value is None:
            return None
        return json.loads(value)

    async def set(self, key: str, value: Any) -> None:
        """Overwrite the value stored under key."""
        client = await self._redis()
        await client.set(self._key(key), json.dumps(value, default=str))

    async def delete(self, key: str) -> None:
        """Delete key."""
        client = await self._redis()
        await client.delete(self._key(key))

    async def ping(self) -> bool:
        client = await self._redis()
        return bool(await client.ping())
