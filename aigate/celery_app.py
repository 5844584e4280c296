"""
Celery application instance.

Runs the periodic health-check and alert-monitoring cycles. Broker and
result backend default to Redis and are configured through
CELERY_BROKER_URL / CELERY_RESULT_BACKEND.

Usage::

    # worker
    celery -A aigate.celery_app.celery_app worker -l info

    # beat (periodic tasks)
    celery -A aigate.celery_app.celery_app beat -l info
"""

from __future__ import annotations

from celery import Celery
from celery.signals import beat_init, worker_process_init

from aigate.logging_config import setup_logging
from aigate.settings import settings

celery_app = Celery(
    "aigate",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_default_queue=settings.celery_task_default_queue,
    timezone=settings.celery_timezone,
    enable_utc=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    imports=(
        "aigate.tasks.provider_health",
        "aigate.tasks.provider_alerts",
    ),
)

# Import task modules eagerly so tasks.* are registered even when only
# celery_app is imported (tests, beat).
celery_app.loader.import_default_modules()


@worker_process_init.connect
def init_worker_logging(**kwargs):
    setup_logging()


@beat_init.connect
def init_beat_logging(**kwargs):
    setup_logging()


__all__ = ["celery_app"]
