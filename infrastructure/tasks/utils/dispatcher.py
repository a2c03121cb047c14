"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


ALERT_TASK = "infrastructure.tasks.tasks.alerts.deliver_payment_alert"


class TaskDispatcher:
    """Internal facade used by infrastructure adapters to schedule tasks."""

    def send_payment_alert(self, event: str, severity: str, context: Dict[str, Any]) -> None:
        celery_app.send_task(
            ALERT_TASK,
            kwargs={"event": event, "severity": severity, "context": context},
        )
