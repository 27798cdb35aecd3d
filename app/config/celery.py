"""
Celery configuration for the meal voucher ledger.

Celery runs the periodic ledger sweeps outside the request cycle:
- vouchers.tasks.expire_vouchers: daily voucher expiry and subscription lapse
- payments.tasks.retry_failed_refunds: automatic retry of FAILED refunds

Schedules are stored in the database (django-celery-beat DatabaseScheduler)
and registered by data migrations in the owning apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up vouchers.tasks and payments.tasks
app.autodiscover_tasks()
