"""
Celery configuration for the billing engine.

Workers run webhook processing and the periodic billing jobs (daily
invoice sweep, webhook retries and cleanup, processor reconciliation).
The periodic schedule lives in the database (django-celery-beat) and is
seeded by billing/migrations/0002_billing_periodic_tasks.py.

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

Usage:
    from billing.tasks import process_webhook_event

    process_webhook_event.delay(str(event.id))
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
