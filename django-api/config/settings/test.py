"""
Test settings for the ticketing API.

SQLite, a local-memory cache, eager Celery and an in-process fake
payment processor.
"""
from .base import *  # noqa

SECRET_KEY = "test-secret"
DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache"}}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

TICKETING_PAYMENT_PROCESSOR = "tests.fakes.FakePaymentProcessor"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = None
