from typing import AbstractSet, Any

import redis.asyncio as redis
from loguru import logger

from app.core.config import settings


class RedisService:
    """
    Thin async wrapper over one shared redis-py client.

    Every command logs and swallows connection-level failures, returning an
    empty read or a falsy write result, so a Redis outage degrades feeds to
    empty lists instead of failing requests.
    """

    def __init__(self, url: str | None = None, max_connections: int | None = None) -> None:
        self._url = url or settings.REDIS_URL
        self._max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self._client: redis.Redis | None = None
        if not self._url:
            logger.warning("REDIS_URL is not set. Feed and preference storage will be unavailable.")

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            logger.info(f"Creating Redis client (max {self._max_connections} connections)")
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=5,
                socket_timeout=5,
                max_connections=self._max_connections,
                health_check_interval=30,
                socket_keepalive=True,
            )
        return self._client

    # Strings

    async def set(self, key: str, value: Any) -> bool:
        """Store a JSON blob or scalar under `key`. Returns False when Redis is unreachable."""
        try:
            client = await self.get_client()
            return bool(await client.set(key, str(value)))
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to SET '{key}' in Redis: {exc}")
            return False

    async def get(self, key: str) -> str | None:
        try:
            client = await self.get_client()
            return await client.get(key)
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to GET '{key}' from Redis: {exc}")
            return None

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        try:
            client = await self.get_client()
            return await client.mget(keys)
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to MGET {len(keys)} keys from Redis: {exc}")
            return [None] * len(keys)

    # Hashes

    async def hgetall(self, key: str) -> dict[str, str]:
        try:
            client = await self.get_client()
            return await client.hgetall(key) or {}
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to HGETALL '{key}' from Redis: {exc}")
            return {}

    async def hset(self, key: str, mapping: dict[str, Any]) -> bool:
        try:
            client = await self.get_client()
            await client.hset(key, mapping={k: str(v) for k, v in mapping.items()})
            return True
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to HSET '{key}' in Redis: {exc}")
            return False

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int | None:
        """Atomically increment a hash field. Returns the new value or None on failure."""
        try:
            client = await self.get_client()
            return int(await client.hincrby(key, field, amount))
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to HINCRBY '{key}.{field}' in Redis: {exc}")
            return None

    # Sets

    async def sadd(self, key: str, *members: Any) -> int:
        try:
            client = await self.get_client()
            return int(await client.sadd(key, *members))
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to SADD to '{key}' in Redis: {exc}")
            return 0

    async def srem(self, key: str, *members: Any) -> int:
        try:
            client = await self.get_client()
            return int(await client.srem(key, *members))
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to SREM from '{key}' in Redis: {exc}")
            return 0

    async def smembers(self, key: str) -> AbstractSet[str]:
        try:
            client = await self.get_client()
            return set(await client.smembers(key))
        except (redis.RedisError, OSError) as exc:
            logger.error(f"Failed to SMEMBERS '{key}' from Redis: {exc}")
            return set()

    async def ping(self) -> bool:
        try:
            client = await self.get_client()
            return bool(await client.ping())
        except (redis.RedisError, OSError) as exc:
            logger.warning(f"Redis ping failed: {exc}")
            return False

    async def close(self) -> None:
        """Close and disconnect the Redis client"""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("RedisService client closed")
            except Exception as exc:
                logger.warning(f"Failed to close RedisService client: {exc}")
            finally:
                self._client = None
