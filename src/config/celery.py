"""
Celery configuration for the restaurant order core.

DJANGO_SETTINGS_MODULE is set before the app is instantiated so Celery
reads its options from Django settings (CELERY_ prefix).
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("orders")

app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
