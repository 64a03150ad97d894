"""
Project package for the ticketing API.

The Celery application is imported here so that shared tasks bind to
`config.celery_app` by default.
"""
from .celery import celery_app  # noqa: F401

__all__ = ["celery_app"]
