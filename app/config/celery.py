"""
Celery configuration for the property ledger.

The ledger hands its post-commit side effects (cache invalidation and
member notifications) to Celery workers so that a slow Redis or a
failing notification channel never holds a database transaction open.

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from finance.tasks import invalidate_cache_pattern

    invalidate_cache_pattern.delay("financial:*:42:*")

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import logging
import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

logger = logging.getLogger(__name__)

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()


@app.task(bind=True, ignore_result=True)
def debug_task(self):
    """Log the task request to verify worker connectivity."""
    logger.info("Celery debug task received", extra={"request_id": self.request.id})
