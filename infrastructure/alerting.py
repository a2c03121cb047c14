"""
Alerter adapters.

Both adapters swallow delivery errors after logging them: an alert that
cannot be sent must not turn a handled payment failure into a different one.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.ports.alerting import AlertSeverity
from core.logging_config import get_logger


logger = get_logger(__name__)


class LoggingAlerter:
    """Writes alerts to the structured log only."""

    async def notify(
        self,
        event: str,
        *,
        severity: AlertSeverity = AlertSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        log = logger.critical if severity is AlertSeverity.CRITICAL else logger.error
        log("payment_alert", alert_event=event, severity=AlertSeverity(severity).value, **(context or {}))


class CeleryAlerter:
    """Logs locally and hands the alert to a Celery worker for webhook delivery."""

    def __init__(self, dispatcher=None) -> None:
        if dispatcher is None:
            from infrastructure.tasks.utils.dispatcher import TaskDispatcher
            dispatcher = TaskDispatcher()
        self._dispatcher = dispatcher
        self._local = LoggingAlerter()

    async def notify(
        self,
        event: str,
        *,
        severity: AlertSeverity = AlertSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        await self._local.notify(event, severity=severity, context=context)
        try:
            # send_task talks to the broker synchronously
            await asyncio.to_thread(
                self._dispatcher.send_payment_alert,
                event,
                AlertSeverity(severity).value,
                _jsonable(context or {}),
            )
        except Exception as exc:
            logger.error("payment_alert_dispatch_failed", alert_event=event, error=str(exc))


def _jsonable(context: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in context.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            out[key] = value
        else:
            out[key] = str(value)
    return out
