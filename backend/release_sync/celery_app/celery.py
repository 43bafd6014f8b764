"""
Celery application configuration.

Redis broker, JSON serialization, UTC timezone, and an hourly beat entry
that fans out release syncs for connections with auto-sync enabled.
"""

import os
from celery import Celery
from celery.signals import after_setup_logger, after_setup_task_logger
from celery.schedules import crontab
from dotenv import load_dotenv

load_dotenv()


@after_setup_logger.connect
@after_setup_task_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    """Configure Celery worker logging via signal."""
    from release_sync.core.logging_config import setup_logging
    setup_logging()


REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

app = Celery(
    "release_sync",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=[
        "release_sync.celery_app.release_tasks",
    ]
)

app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone - use UTC for consistency
    timezone="UTC",
    enable_utc=True,

    # Worker configuration
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,

    # Task configuration
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,

    result_expires=86400,  # 24h

    task_default_queue="default",
    task_queues={
        "default": {},
    },
    task_routes={
        "scan_auto_sync_connections": {"queue": "default"},
    },

    beat_schedule={
        "scan-auto-sync-hourly": {
            "task": "scan_auto_sync_connections",
            "schedule": crontab(minute=0),
        },
    },
)
