"""Alert delivery tasks"""
from __future__ import annotations

from typing import Any, Optional

import httpx
from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    autoretry_for=(httpx.HTTPError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def deliver_payment_alert(
    self,
    event: str,
    severity: str,
    context: Optional[dict[str, Any]] = None,
) -> bool:
    """Post an alert to the configured webhook.

    Without a webhook the alert is only logged. Returns True when the
    webhook accepted the payload.
    """
    payload = {
        "service": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT,
        "event": event,
        "severity": severity,
        "context": context or {},
    }
    url = settings.alerting.webhook_url
    if not url:
        logger.warning("payment_alert", **payload)
        return False

    with httpx.Client(timeout=settings.alerting.timeout_seconds) as client:
        response = client.post(url, json=payload)
        response.raise_for_status()
    logger.info("payment_alert_delivered", event=event, severity=severity, status_code=response.status_code)
    return True
