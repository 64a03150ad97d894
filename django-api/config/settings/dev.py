"""
Development settings for the ticketing API.

Enables debugging and allows all hosts. Do not use in production.
"""
from .base import *  # noqa

DEBUG = True
ALLOWED_HOSTS = ["*"]

LOGGING["loggers"]["ticketing"]["level"] = "DEBUG"  # noqa: F405
