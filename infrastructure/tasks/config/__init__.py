"""Expose the Celery application for convenient imports."""
from .celery import celery_app

__all__ = ["celery_app"]
