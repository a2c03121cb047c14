import asyncio
import uuid

import pytest
from pydantic import ValidationError

from application.dtos.payments import CreatePaymentIntent
from domain.payment.exceptions import PaymentError
from domain.payment.status import TransactionStatus
from infrastructure.external.payments.exceptions import PaymentProviderError
from shared.codes.payment_codes import PaymentErrorCode


def _intent(amount=5000, key="intent-1", **kw):
    data = dict(
        idempotency_key=key,
        amount=amount,
        currency="usd",
        payment_method="card",
        description="Order #1",
    )
    data.update(kw)
    return CreatePaymentIntent(**data)


@pytest.mark.asyncio
async def test_create_intent_persists_pending_transaction(service, transactions, processor):
    customer = str(uuid.uuid4())
    result = await service.create_payment_intent(_intent(customer_id=customer))

    assert result.payment_intent_id.startswith("pi_fake_")
    assert result.client_secret
    txn = await transactions.get_by_id(result.transaction_id)
    assert txn.status is TransactionStatus.PENDING
    assert txn.reference_id == result.payment_intent_id
    assert txn.user_id == customer
    assert processor.create_calls == 1


@pytest.mark.asyncio
async def test_same_key_different_amount_replays_first_result(service, processor):
    first = await service.create_payment_intent(_intent(amount=5000))
    second = await service.create_payment_intent(_intent(amount=9999))
    assert second == first
    assert processor.create_calls == 1


@pytest.mark.asyncio
async def test_concurrent_duplicates_execute_once(service, processor):
    processor.delay = 0.05
    results = await asyncio.gather(*(service.create_payment_intent(_intent()) for _ in range(5)))
    assert len({r.payment_intent_id for r in results}) == 1
    assert processor.create_calls == 1


@pytest.mark.asyncio
async def test_keys_are_scoped_per_operation(service, user_id):
    from application.dtos.payments import WalletTransactionRequest

    intent = await service.create_payment_intent(_intent(key="shared"))
    wallet = await service.process_wallet_transaction(WalletTransactionRequest(
        idempotency_key="shared", user_id=user_id, amount=100, type="credit", description="top up",
    ))
    assert wallet.transaction_id != intent.transaction_id


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 100_000_000])
async def test_invalid_amount_rejected_without_audit(service, audit_repo, processor, amount):
    with pytest.raises(PaymentError) as ei:
        await service.create_payment_intent(_intent(amount=amount))
    assert ei.value.kind is PaymentErrorCode.INVALID_AMOUNT
    assert len(audit_repo) == 0
    assert processor.create_calls == 0


def test_float_amount_rejected_by_schema():
    with pytest.raises(ValidationError):
        _intent(amount=50.5)


def test_blank_idempotency_key_rejected_by_schema():
    with pytest.raises(ValidationError):
        _intent(key="   ")


@pytest.mark.asyncio
async def test_processor_failure_is_audited_alerted_and_wrapped(service, processor, alerter, audit_repo):
    processor.fail_create = PaymentProviderError("card_declined", provider="fake")
    with pytest.raises(PaymentError) as ei:
        await service.create_payment_intent(_intent())

    err = ei.value
    assert err.kind is PaymentErrorCode.PAYMENT_INTENT_FAILED
    assert err.status_code == 500
    assert isinstance(err.__cause__, PaymentProviderError)
    actions = [e.action for e in await audit_repo.query()]
    assert actions == ["create_payment_intent", "create_payment_intent_failed"]
    assert alerter.alerts[0]["event"] == "create_payment_intent_failed"
    assert alerter.alerts[0]["severity"].value == "critical"


@pytest.mark.asyncio
async def test_failure_is_not_locked_in(service, processor):
    processor.fail_create = PaymentProviderError("temporarily unavailable", provider="fake")
    with pytest.raises(PaymentError):
        await service.create_payment_intent(_intent())

    processor.fail_create = None
    result = await service.create_payment_intent(_intent())
    assert result.payment_intent_id.startswith("pi_fake_")


@pytest.mark.asyncio
async def test_timeout_leaves_key_retryable(service, processor, idempotency):
    processor.delay = 2.0  # longer than the service's 0.5s processor timeout
    with pytest.raises(PaymentError) as ei:
        await service.create_payment_intent(_intent(key="slow"))
    assert ei.value.kind is PaymentErrorCode.PAYMENT_INTENT_FAILED
    assert isinstance(ei.value.__cause__, TimeoutError)
    assert not await idempotency.is_in_flight("create_payment_intent:slow")

    processor.delay = 0.0
    result = await service.create_payment_intent(_intent(key="slow"))
    assert result.payment_intent_id


@pytest.mark.asyncio
async def test_replay_is_audited(service, audit_repo):
    await service.create_payment_intent(_intent())
    await service.create_payment_intent(_intent())
    actions = [e.action for e in await audit_repo.query()]
    assert actions == [
        "create_payment_intent",
        "create_payment_intent_success",
        "create_payment_intent_replayed",
    ]
