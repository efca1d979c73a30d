"""Fixed-window rate limiting on the shared Redis store."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional

from obanet.core.exceptions import RateLimitExceededException
from obanet.utils.clock import Clock, utc_now
from .redis_client import RedisClient

logger = logging.getLogger("obanet.cache")


@dataclass(frozen=True)
class RateLimitResult:
    """
    Outcome of counting one request.

    Attributes:
        limit: Maximum requests per window
        remaining: Requests left in the current window
        reset_after: Seconds until the window resets
        allowed: Whether this request is within quota
    """

    limit: int
    remaining: int
    reset_after: int
    allowed: bool

    def headers(self, clock: Clock = utc_now) -> Dict[str, str]:
        reset_at = clock() + timedelta(seconds=self.reset_after)
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": reset_at.isoformat(),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_after)
        return headers


class RateLimiter:
    """
    Per-identity fixed-window counter.

    The counter is incremented atomically, so concurrent requests on
    different instances never lose a hit. The first hit of a window sets
    its expiry. When Redis is unavailable every request is allowed.
    """

    def __init__(self, redis_client: RedisClient, enabled: bool = True):
        """
        Initialize rate limiter.

        Args:
            redis_client: Redis client instance
            enabled: When False every request is allowed without counting
        """
        self._redis = redis_client
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @staticmethod
    def key_for(identity: str, scope: Optional[str] = None) -> str:
        """
        Build counter key.

        Args:
            identity: ``user:<id>`` or ``ip:<address>``
            scope: Optional route scope so limits do not share a counter
        """
        key = f"rate_limit:{identity}"
        return f"{key}:{scope}" if scope else key

    async def hit(
        self,
        identity: str,
        limit: int,
        window_seconds: int,
        scope: Optional[str] = None,
    ) -> RateLimitResult:
        """
        Count one request for an identity.

        Args:
            identity: ``user:<id>`` or ``ip:<address>``
            limit: Maximum requests per window
            window_seconds: Window size in seconds
            scope: Optional route scope

        Returns:
            Counting outcome; ``allowed`` is True on store failure
        """
        if not self._enabled:
            return RateLimitResult(limit, limit, window_seconds, True)

        key = self.key_for(identity, scope)
        count = await self._redis.increment(key)
        if count is None:
            logger.warning("Rate limiting unavailable for %s, allowing request", key)
            return RateLimitResult(limit, limit, window_seconds, True)

        ttl = None if count == 1 else await self._redis.get_ttl(key)
        if ttl is None:
            # first hit, or a counter whose expiry was never set
            await self._redis.expire(key, window_seconds)
            ttl = window_seconds

        return RateLimitResult(
            limit=limit,
            remaining=max(0, limit - count),
            reset_after=ttl,
            allowed=count <= limit,
        )

    async def check(
        self,
        identity: str,
        limit: int,
        window_seconds: int,
        scope: Optional[str] = None,
    ) -> RateLimitResult:
        """
        Count one request and reject it when over quota.

        Raises:
            RateLimitExceededException: If the identity exceeded its quota
        """
        result = await self.hit(identity, limit, window_seconds, scope)
        if not result.allowed:
            logger.info("Rate limit exceeded for %s", self.key_for(identity, scope))
            raise RateLimitExceededException(limit, window_seconds, result.reset_after)
        return result
