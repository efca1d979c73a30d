"""Token revocation registry backed by Redis."""

import logging
import math
from datetime import datetime
from typing import Optional

from obanet.core.auth.interfaces import TokenRegistryInterface
from obanet.core.domain.enums import TokenType
from obanet.utils.clock import Clock, ensure_utc, utc_now
from .redis_client import RedisClient

logger = logging.getLogger("obanet.cache")


class TokenRegistry(TokenRegistryInterface):
    """
    Revocation entries, refresh-token slots and per-user session epochs.

    A revoked token is stored under its raw value until it would have
    expired anyway. The session epoch rejects every token of a user
    issued before a point in time, which is how all devices are logged
    out at once. All reads fail open when Redis is unavailable.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        refresh_ttl_seconds: int,
        clock: Clock = utc_now,
    ):
        """
        Initialize token registry.

        Args:
            redis_client: Redis client instance
            refresh_ttl_seconds: Refresh token lifetime; bounds slot and epoch TTLs
            clock: Source of the current time
        """
        self._redis = redis_client
        self._refresh_ttl = refresh_ttl_seconds
        self._clock = clock

    @staticmethod
    def _revocation_key(token: str, kind: TokenType) -> str:
        if kind == TokenType.REFRESH:
            return f"blacklist:refresh:{token}"
        return f"blacklist:{token}"

    @staticmethod
    def _refresh_slot_key(user_id: str) -> str:
        return f"refresh_token:{user_id}"

    @staticmethod
    def _epoch_key(user_id: str) -> str:
        return f"token_epoch:{user_id}"

    async def revoke(self, token: str, expires_at: datetime, kind: TokenType) -> bool:
        remaining = (ensure_utc(expires_at) - self._clock()).total_seconds()
        ttl = max(1, math.ceil(remaining))
        written = await self._redis.set(self._revocation_key(token, kind), True, ttl)
        if not written:
            logger.warning("Could not record %s token revocation", TokenType(kind).value)
        return written

    async def is_revoked(self, token: str, kind: TokenType) -> bool:
        return await self._redis.exists(self._revocation_key(token, kind))

    async def store_refresh_token(self, user_id: str, token: str) -> bool:
        return await self._redis.set(
            self._refresh_slot_key(user_id), token, self._refresh_ttl
        )

    async def get_refresh_token(self, user_id: str) -> Optional[str]:
        """Current refresh token of a user, if recorded."""
        return await self._redis.get(self._refresh_slot_key(user_id))

    async def clear_refresh_token(self, user_id: str) -> bool:
        return await self._redis.delete(self._refresh_slot_key(user_id))

    async def revoke_all_sessions(self, user_id: str, at: datetime) -> bool:
        written = await self._redis.set(
            self._epoch_key(user_id), ensure_utc(at).timestamp(), self._refresh_ttl
        )
        if not written:
            logger.warning("Could not record session epoch for user %s", user_id)
        return written

    async def revoked_by_epoch(self, user_id: str, issued_at: float) -> bool:
        epoch = await self._redis.get(self._epoch_key(user_id))
        if epoch is None:
            return False
        try:
            return issued_at < float(epoch)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed session epoch for user %s", user_id)
            return False
