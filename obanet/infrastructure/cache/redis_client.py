"""Redis client implementation for the auth key/value store."""

import json
import logging
from typing import Any, Optional, Union
from datetime import timedelta

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger("obanet.cache")


class RedisClient:
    """
    Best-effort Redis client for revocation, session and rate-limit data.

    Provides async Redis operations with JSON serialization and short
    timeouts. Every operation swallows store errors, logs them and
    returns a neutral default so callers can fail open.
    """

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 0.5,
        connect_timeout: float = 1.0,
        client: Optional[Redis] = None,
    ):
        """
        Initialize Redis client.

        Args:
            redis_url: Redis connection URL
            socket_timeout: Per-command timeout in seconds
            connect_timeout: Connect timeout in seconds
            client: Pre-built client, used instead of connecting to ``redis_url``
        """
        self._redis: Optional[Redis] = client
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout

    async def connect(self) -> None:
        """
        Establish Redis connection.

        Creates connection pool with short timeouts so an unreachable
        store degrades quickly instead of stalling requests.
        """
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=20,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
                socket_keepalive=True,
            )

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            try:
                await self._redis.aclose()
            except RedisError as e:
                logger.warning("Redis disconnect failed: %s", e)
            self._redis = None

    def _failed(self, operation: str, key: str, error: Exception) -> None:
        logger.warning("Redis %s failed for %s: %s", operation, key, error)

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from Redis.

        Args:
            key: Cache key

        Returns:
            Decoded value or None if not found or unavailable
        """
        await self.connect()
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as e:
            self._failed("get", key, e)
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[int, timedelta]] = None,
    ) -> bool:
        """
        Set value in Redis.

        Args:
            key: Cache key
            value: JSON-serializable value
            ttl: Time to live (seconds or timedelta)

        Returns:
            True if successful, False otherwise
        """
        await self.connect()
        try:
            serialized_value = json.dumps(value, default=str)

            if ttl:
                if isinstance(ttl, timedelta):
                    ttl = int(ttl.total_seconds())
                return bool(await self._redis.setex(key, max(1, ttl), serialized_value))
            return bool(await self._redis.set(key, serialized_value))
        except (RedisError, OSError) as e:
            self._failed("set", key, e)
            return False

    async def delete(self, key: str) -> bool:
        """
        Delete key from Redis.

        Returns:
            True if key was deleted, False if not found or unavailable
        """
        await self.connect()
        try:
            result = await self._redis.delete(key)
            return result > 0
        except (RedisError, OSError) as e:
            self._failed("delete", key, e)
            return False

    async def exists(self, key: str) -> bool:
        """
        Check if key exists in Redis.

        Returns:
            True if key exists, False if absent or unavailable
        """
        await self.connect()
        try:
            return await self._redis.exists(key) > 0
        except (RedisError, OSError) as e:
            self._failed("exists", key, e)
            return False

    async def expire(self, key: str, ttl: Union[int, timedelta]) -> bool:
        """
        Set expiration time for existing key.

        Returns:
            True if expiration was set, False otherwise
        """
        await self.connect()
        try:
            if isinstance(ttl, timedelta):
                ttl = int(ttl.total_seconds())
            return bool(await self._redis.expire(key, ttl))
        except (RedisError, OSError) as e:
            self._failed("expire", key, e)
            return False

    async def increment(self, key: str, amount: int = 1) -> Optional[int]:
        """
        Atomically increment numeric value in Redis.

        Args:
            key: Cache key
            amount: Amount to increment (default: 1)

        Returns:
            New value after increment, None on error
        """
        await self.connect()
        try:
            return await self._redis.incrby(key, amount)
        except (RedisError, OSError) as e:
            self._failed("incrby", key, e)
            return None

    async def get_ttl(self, key: str) -> Optional[int]:
        """
        Get time-to-live for a key.

        Returns:
            TTL in seconds, None if key doesn't exist or has no expiration
        """
        await self.connect()
        try:
            ttl = await self._redis.ttl(key)
            return ttl if ttl > 0 else None
        except (RedisError, OSError) as e:
            self._failed("ttl", key, e)
            return None

    async def ping(self) -> bool:
        """
        Ping Redis server to check connectivity.

        Returns:
            True if Redis is responsive, False otherwise
        """
        await self.connect()
        try:
            response = await self._redis.ping()
            return response is True
        except (RedisError, OSError) as e:
            self._failed("ping", "-", e)
            return False

    async def get_info(self) -> dict:
        """
        Get Redis server information.

        Returns:
            Redis server info dictionary
        """
        await self.connect()
        try:
            return await self._redis.info()
        except (RedisError, OSError) as e:
            self._failed("info", "-", e)
            return {}
