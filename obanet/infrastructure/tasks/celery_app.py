"""Celery application configuration for background tasks."""

from celery import Celery
from celery.signals import setup_logging

from obanet.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "obanet_auth",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "obanet.infrastructure.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_routes={
        "obanet.infrastructure.tasks.maintenance_tasks.*": {"queue": "maintenance"},
    },

    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    result_expires=3600,  # 1 hour
    result_backend_transport_options={
        "retry_policy": {
            "timeout": 5.0,
        },
    },

    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    beat_schedule={
        "purge-expired-one-time-tokens": {
            "task": "obanet.infrastructure.tasks.maintenance_tasks.purge_expired_one_time_tokens",
            "schedule": 3600.0,  # Every hour
        },
        "health-check-services": {
            "task": "obanet.infrastructure.tasks.maintenance_tasks.health_check_services",
            "schedule": 300.0,  # Every 5 minutes
        },
    },
)


@setup_logging.connect
def config_loggers(*args, **kwargs):
    """Configure Celery logging."""
    from logging.config import dictConfig
    from obanet.utils.logging import get_logging_config

    dictConfig(get_logging_config())


def get_celery_app() -> Celery:
    """
    Get configured Celery application.

    Returns:
        Celery: Configured Celery application
    """
    return celery_app
