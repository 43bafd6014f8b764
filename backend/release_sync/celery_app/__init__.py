"""
Celery application module.

Exports the Celery app instance for workers and beat.
"""

from .celery import app as celery_app

__all__ = ["celery_app"]
