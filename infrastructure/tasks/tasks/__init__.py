"""Task modules grouped by concern.

Import side effects register Celery tasks once this package is imported.
"""
from . import alerts  # noqa: F401 to register tasks

__all__ = ["alerts"]
