import pytest

from application.ports.alerting import AlertSeverity
from infrastructure.alerting import CeleryAlerter, LoggingAlerter


class RecordingDispatcher:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def send_payment_alert(self, event, severity, context):
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.sent.append((event, severity, context))


@pytest.mark.asyncio
async def test_logging_alerter_never_raises():
    await LoggingAlerter().notify("refund_failed", severity=AlertSeverity.CRITICAL, context={"amount": 1})


@pytest.mark.asyncio
async def test_celery_alerter_dispatches_json_safe_context():
    dispatcher = RecordingDispatcher()
    alerter = CeleryAlerter(dispatcher)
    await alerter.notify("refund_failed", severity=AlertSeverity.CRITICAL, context={"error": ValueError("x"), "amount": 5})
    assert dispatcher.sent == [("refund_failed", "critical", {"error": "x", "amount": 5})]


@pytest.mark.asyncio
async def test_celery_alerter_swallows_dispatch_errors():
    alerter = CeleryAlerter(RecordingDispatcher(fail=True))
    await alerter.notify("refund_failed", severity=AlertSeverity.ERROR)


def test_alert_task_without_webhook_only_logs(monkeypatch):
    from core.config import settings
    from infrastructure.tasks.tasks.alerts import deliver_payment_alert

    monkeypatch.setattr(settings.alerting, "webhook_url", None)
    assert deliver_payment_alert.apply(args=("refund_failed", "critical", {"amount": 5})).get() is False
