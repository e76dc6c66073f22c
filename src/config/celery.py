"""Celery application for the storefront.

``DJANGO_SETTINGS_MODULE`` is set before the app is created so Celery
reads the ``CELERY_`` prefixed Django settings.
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("storefront")

app.config_from_object("django.conf:settings", namespace="CELERY")

# Discovers tasks.py in every installed app
app.autodiscover_tasks()
