"""
Celery configuration for the marketplace escrow backend.

Background work handled by Celery:
- Stripe webhook processing (payments.tasks)
- The daily escrow release sweep and per-order releases (orders.tasks)

Redis is both the message broker and result backend. Periodic schedules live
in the database (django-celery-beat) and are created by data migrations.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
