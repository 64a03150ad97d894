"""
Celery configuration for the ticketing API.

Tasks are discovered from the `tasks.py` module of each installed app.
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

celery_app = Celery("config")

# Celery settings live in Django settings under the "CELERY_" prefix
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()
