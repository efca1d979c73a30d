"""Process-wide resources shared by request handlers."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import cached_property
from typing import Optional

from redis.asyncio import Redis

from obanet.core.auth.services import PasswordService, TokenService
from obanet.core.exceptions import DomainException
from obanet.infrastructure.cache.cache_service import SessionCache
from obanet.infrastructure.cache.rate_limiter import RateLimiter
from obanet.infrastructure.cache.redis_client import RedisClient
from obanet.infrastructure.cache.token_registry import TokenRegistry
from obanet.infrastructure.database.connection import DatabaseManager
from obanet.infrastructure.database.repositories.user_repository import SqlUserRepository
from obanet.settings import Settings
from obanet.utils.async_helpers import BackgroundTaskRunner
from obanet.utils.clock import Clock, utc_now

logger = logging.getLogger("obanet")


@dataclass
class AppResources:
    """
    Long-lived clients built once at startup.

    Attached to ``app.state`` by the lifespan and handed to dependencies
    by reference; ``close`` releases them on shutdown.
    """

    settings: Settings
    database: DatabaseManager
    redis: RedisClient
    clock: Clock = utc_now
    background: BackgroundTaskRunner = field(default_factory=BackgroundTaskRunner)
    started_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        settings: Settings,
        redis_client: Optional[Redis] = None,
        clock: Clock = utc_now,
    ) -> "AppResources":
        """
        Build resources from settings.

        Args:
            settings: Application settings
            redis_client: Pre-built Redis client, e.g. an in-memory double
            clock: Source of the current time
        """
        return cls(
            settings=settings,
            database=DatabaseManager(settings),
            redis=RedisClient(
                settings.redis_url,
                socket_timeout=settings.redis_socket_timeout,
                connect_timeout=settings.redis_connect_timeout,
                client=redis_client,
            ),
            clock=clock,
            started_at=clock(),
        )

    @cached_property
    def password_service(self) -> PasswordService:
        return PasswordService(rounds=self.settings.bcrypt_rounds)

    @cached_property
    def token_service(self) -> TokenService:
        return TokenService(self.settings, clock=self.clock)

    @cached_property
    def session_cache(self) -> SessionCache:
        return SessionCache(
            self.redis, ttl=timedelta(seconds=self.settings.session_cache_ttl_seconds)
        )

    @cached_property
    def token_registry(self) -> TokenRegistry:
        return TokenRegistry(
            self.redis, self.settings.refresh_token_ttl_seconds, clock=self.clock
        )

    @cached_property
    def rate_limiter(self) -> RateLimiter:
        return RateLimiter(self.redis, enabled=self.settings.rate_limit_enabled)

    async def startup(self) -> None:
        await self.database.initialize()
        if self.settings.database_is_sqlite:
            await self.database.create_all()
        if not await self.redis.ping():
            logger.warning("Redis unavailable at startup, continuing without it")

    async def close(self) -> None:
        await self.background.drain()
        await self.redis.disconnect()
        await self.database.close()

    def schedule_last_active_touch(self, user_id: str) -> None:
        """Record activity in a detached task with its own session."""
        self.background.spawn(
            self._touch_last_active(user_id), name=f"touch-last-active:{user_id}"
        )

    async def _touch_last_active(self, user_id: str) -> None:
        try:
            async with self.database.get_session() as session:
                await SqlUserRepository(session).touch_last_active(user_id, self.clock())
        except DomainException as e:
            logger.warning("Could not update last activity of %s: %s", user_id, e.message)
