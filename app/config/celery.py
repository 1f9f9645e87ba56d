"""
Celery configuration for the order refund service.

Celery runs the background side of the refund lifecycle:
- Stripe webhook processing (payments.tasks)
- Periodic reconciliation of APPROVED refunds against Stripe
  (payments.workers.reconciliation_worker), scheduled by django-celery-beat

Redis is both the message broker and result backend. Tasks are
auto-discovered from all installed Django apps.

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
