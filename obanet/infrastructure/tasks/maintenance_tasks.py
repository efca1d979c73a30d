"""Celery tasks for account maintenance."""

import logging
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from obanet.core.exceptions import DomainException
from obanet.infrastructure.cache.redis_client import RedisClient
from obanet.infrastructure.database.connection import DatabaseManager
from obanet.infrastructure.database.repositories.user_repository import SqlUserRepository
from obanet.infrastructure.tasks.celery_app import celery_app
from obanet.settings import Settings, get_settings
from obanet.utils.async_helpers import run_async
from obanet.utils.clock import utc_now

logger = logging.getLogger("obanet.tasks")


@celery_app.task
def purge_expired_one_time_tokens() -> Dict:
    """
    Clear password reset and email verification tokens past their expiry.

    Expired tokens are already rejected on use; this only keeps the
    user rows tidy.

    Returns:
        Cleanup result with count of users touched
    """
    try:
        result = run_async(_purge_tokens_internal())
        return {
            "status": "COMPLETED",
            "users_cleaned": result["users_cleaned"],
            "completed_at": utc_now().isoformat(),
        }
    except DomainException as e:
        logger.error("One-time token purge failed: %s", e.message)
        return {
            "status": "FAILED",
            "error": e.message,
            "failed_at": utc_now().isoformat(),
        }


async def _purge_tokens_internal(database: Optional[DatabaseManager] = None) -> Dict:
    """Internal token purge logic."""
    owns_database = database is None
    if owns_database:
        database = DatabaseManager(get_settings())
        await database.initialize()

    try:
        async with database.get_session() as session:
            users_cleaned = await SqlUserRepository(session).clear_expired_one_time_tokens(utc_now())
    finally:
        if owns_database:
            await database.close()

    logger.info("Purged expired one-time tokens from %d users", users_cleaned)
    return {"users_cleaned": users_cleaned}


@celery_app.task
def health_check_services() -> Dict:
    """
    Perform health checks on the user store and Redis.

    Returns:
        Health check results
    """
    result = run_async(_health_check_internal(get_settings()))
    return {
        "status": "COMPLETED",
        "services": result["services"],
        "overall_health": result["overall_health"],
        "checked_at": utc_now().isoformat(),
    }


async def _health_check_internal(settings: Settings) -> Dict:
    """Internal health check logic."""
    services = {}

    database = DatabaseManager(settings)
    await database.initialize()
    try:
        async with database.get_session() as session:
            await session.execute(text("SELECT 1"))
        services["database"] = "healthy"
    except SQLAlchemyError as e:
        services["database"] = f"unhealthy: {e}"
    finally:
        await database.close()

    redis_client = RedisClient(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        connect_timeout=settings.redis_connect_timeout,
    )
    services["redis"] = "healthy" if await redis_client.ping() else "unhealthy"
    await redis_client.disconnect()

    if services["database"] != "healthy":
        overall_health = "unhealthy"
    elif services["redis"] != "healthy":
        overall_health = "degraded"
    else:
        overall_health = "healthy"

    if overall_health != "healthy":
        logger.warning("Service health is %s: %s", overall_health, services)

    return {
        "services": services,
        "overall_health": overall_health,
    }
