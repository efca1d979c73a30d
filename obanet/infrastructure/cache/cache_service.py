"""Session cache for user profiles."""

from typing import Any, Dict, Optional
from datetime import timedelta

from obanet.core.auth.interfaces import SessionCacheInterface
from .redis_client import RedisClient


class SessionCache(SessionCacheInterface):
    """
    Short-lived cache of public user profiles.

    Saves a user store read on every authenticated request. Entries are
    dropped whenever the auth service mutates the user, and expire on a
    fixed TTL otherwise.
    """

    def __init__(self, redis_client: RedisClient, ttl: timedelta = timedelta(minutes=30)):
        """
        Initialize session cache.

        Args:
            redis_client: Redis client instance
            ttl: Lifetime of a cached profile
        """
        self._redis = redis_client
        self._ttl = ttl

    def _user_session_key(self, user_id: str) -> str:
        """Generate cache key for user session."""
        return f"session:user:{user_id}"

    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Get cached profile.

        Args:
            user_id: User ID

        Returns:
            Profile data or None if absent, malformed or unavailable
        """
        cached_data = await self._redis.get(self._user_session_key(user_id))
        if isinstance(cached_data, dict) and cached_data.get("id") == user_id:
            return cached_data
        return None

    async def set(self, user_id: str, profile: Dict[str, Any]) -> bool:
        """
        Cache a profile.

        Args:
            user_id: User ID
            profile: Public profile projection

        Returns:
            True if cached successfully
        """
        return await self._redis.set(self._user_session_key(user_id), profile, self._ttl)

    async def invalidate(self, user_id: str) -> bool:
        """
        Delete cached profile.

        Returns:
            True if an entry was deleted
        """
        return await self._redis.delete(self._user_session_key(user_id))

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform cache health check.

        Returns:
            Health status information
        """
        is_connected = await self._redis.ping()
        info = await self._redis.get_info() if is_connected else {}

        return {
            "status": "healthy" if is_connected else "unhealthy",
            "connected": is_connected,
            "memory_usage": info.get("used_memory_human", "unknown"),
            "connected_clients": info.get("connected_clients", 0),
        }
