import pytest

from infrastructure.external.payments import get_payment_processor
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.fake import FakePaymentProcessor
from application.dtos.payments import ProcessorIntent


class _FlakyClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self, failures):
        super().__init__(retry={"max": 2, "base": 0.0})
        self.failures = failures
        self.calls = 0

    async def _create_intent(self, amount, currency, payment_method, *, idempotency_key, metadata):
        self.calls += 1
        if self.calls <= self.failures:
            raise PaymentRecoverableError("rate limited", provider=self.provider)
        return ProcessorIntent(id="pi_1", client_secret="s", provider=self.provider)


def test_factory_selects_fake():
    assert isinstance(get_payment_processor("fake"), FakePaymentProcessor)
    with pytest.raises(ValueError):
        get_payment_processor("paypal")


def test_provider_status_mapping():
    c = _FlakyClient(0)
    assert c._map_status("succeeded") == "completed"
    assert c._map_status("requires_action") == "pending"
    assert c._map_status("something_new") == "something_new"


@pytest.mark.asyncio
async def test_recoverable_errors_are_retried():
    c = _FlakyClient(failures=2)
    intent = await c.create_intent(100, "USD", "card")
    assert intent.id == "pi_1"
    assert c.calls == 3


@pytest.mark.asyncio
async def test_retries_are_bounded():
    c = _FlakyClient(failures=5)
    with pytest.raises(PaymentRecoverableError):
        await c.create_intent(100, "USD", "card")
    assert c.calls == 3


@pytest.mark.asyncio
async def test_fake_ids_are_deterministic():
    p = FakePaymentProcessor()
    first = await p.create_intent(100, "USD", "card")
    refund = await p.refund("t1", 50)
    assert first.id == "pi_fake_000001"
    assert first.client_secret == "pi_fake_000001_secret"
    assert refund.id == "re_fake_000002"
    assert (p.create_calls, p.refund_calls) == (1, 1)


@pytest.mark.asyncio
async def test_stripe_adapter_forwards_idempotency_key(monkeypatch):
    stripe = pytest.importorskip("stripe")
    from infrastructure.external.payments.stripe_client import StripePaymentProcessor

    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return {"id": "pi_123", "client_secret": "pi_123_secret", "status": "requires_payment_method"}

    monkeypatch.setattr(stripe.PaymentIntent, "create", staticmethod(fake_create))
    client = StripePaymentProcessor(secret_key="sk_test_123")
    intent = await client.create_intent(5000, "USD", "card", idempotency_key="create_payment_intent:k1")

    assert intent.id == "pi_123"
    assert intent.status == "pending"
    assert captured["amount"] == 5000
    assert captured["currency"] == "usd"
    assert captured["idempotency_key"] == "create_payment_intent:k1"


@pytest.mark.asyncio
async def test_stripe_refund_requires_reference():
    pytest.importorskip("stripe")
    from infrastructure.external.payments.stripe_client import StripePaymentProcessor

    client = StripePaymentProcessor(secret_key="sk_test_123")
    with pytest.raises(PaymentProviderError):
        await client.refund("t1", 100, reference_id=None)


@pytest.mark.asyncio
async def test_fake_replays_repeated_idempotency_key():
    p = FakePaymentProcessor()
    first = await p.refund("t1", 600, idempotency_key="process_refund:r1")
    again = await p.refund("t1", 600, idempotency_key="process_refund:r1")
    assert again.id == first.id
    assert (p.refund_calls, p.replayed_calls) == (1, 1)

    intent = await p.create_intent(100, "USD", "card", idempotency_key="i1")
    assert (await p.create_intent(100, "USD", "card", idempotency_key="i1")).id == intent.id
    assert p.create_calls == 1


@pytest.mark.asyncio
async def test_fake_rejects_reused_key_with_other_parameters():
    p = FakePaymentProcessor()
    await p.refund("t1", 600, idempotency_key="r1")
    with pytest.raises(PaymentProviderError):
        await p.refund("t1", 400, idempotency_key="r1")
    assert p.refund_calls == 1


@pytest.mark.asyncio
async def test_fake_failed_call_is_not_remembered():
    p = FakePaymentProcessor()
    p.fail_refund = PaymentProviderError("declined", provider="fake")
    with pytest.raises(PaymentProviderError):
        await p.refund("t1", 600, idempotency_key="r1")
    p.fail_refund = None
    refund = await p.refund("t1", 600, idempotency_key="r1")
    assert refund.status == "succeeded"
    assert (p.refund_calls, p.replayed_calls) == (2, 0)
