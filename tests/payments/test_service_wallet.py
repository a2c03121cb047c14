import asyncio
import uuid

import pytest

from application.dtos.payments import WalletTransactionRequest
from domain.common.exceptions import ConcurrentUpdateException
from domain.payment.exceptions import PaymentError
from domain.payment.status import TransactionStatus
from infrastructure.repositories.memory import InMemoryWalletRepository
from shared.codes.payment_codes import PaymentErrorCode


def _wallet_tx(user_id, amount, kind="debit", key=None, **kw):
    return WalletTransactionRequest(
        idempotency_key=key or str(uuid.uuid4()),
        user_id=user_id,
        amount=amount,
        type=kind,
        description=f"{kind} {amount}",
        **kw,
    )


async def _fund(service, user_id, amount):
    return await service.process_wallet_transaction(_wallet_tx(user_id, amount, "credit"))


@pytest.mark.asyncio
async def test_end_to_end_replayed_debit_is_a_no_op(service, user_id):
    await _fund(service, user_id, 50000)

    first = await service.process_wallet_transaction(_wallet_tx(user_id, 20000, key="k1"))
    assert first.new_balance == 30000

    replay = await service.process_wallet_transaction(_wallet_tx(user_id, 20000, key="k1"))
    assert replay == first
    assert (await service.get_wallet_balance(user_id)).available_balance == 30000


@pytest.mark.asyncio
async def test_replay_with_different_amount_returns_first_result(service, user_id):
    await _fund(service, user_id, 1000)
    first = await service.process_wallet_transaction(_wallet_tx(user_id, 100, key="dup"))
    second = await service.process_wallet_transaction(_wallet_tx(user_id, 700, key="dup"))
    assert second.transaction_id == first.transaction_id
    assert second.new_balance == first.new_balance == 900


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_balance_unchanged(service, user_id, audit_repo, transactions):
    await _fund(service, user_id, 500)
    with pytest.raises(PaymentError) as ei:
        await service.process_wallet_transaction(_wallet_tx(user_id, 501))
    assert ei.value.kind is PaymentErrorCode.INSUFFICIENT_FUNDS
    assert ei.value.status_code == 400
    assert (await service.get_wallet_balance(user_id)).available_balance == 500
    assert len(await transactions.list_by_user(user_id)) == 1
    rejected = await audit_repo.query(action="process_wallet_transaction_rejected")
    assert rejected[0].metadata["error_code"] == "INSUFFICIENT_FUNDS"


@pytest.mark.asyncio
async def test_rejected_debit_key_can_be_retried_after_funding(service, user_id):
    with pytest.raises(PaymentError):
        await service.process_wallet_transaction(_wallet_tx(user_id, 300, key="later"))
    await _fund(service, user_id, 300)
    result = await service.process_wallet_transaction(_wallet_tx(user_id, 300, key="later"))
    assert result.new_balance == 0


@pytest.mark.asyncio
async def test_concurrent_debits_never_lose_updates(service, user_id):
    n, amount = 25, 40
    await _fund(service, user_id, n * amount)

    results = await asyncio.gather(*(
        service.process_wallet_transaction(_wallet_tx(user_id, amount)) for _ in range(n)
    ))
    assert (await service.get_wallet_balance(user_id)).available_balance == 0
    assert sorted(r.new_balance for r in results) == [i * amount for i in range(n)]


@pytest.mark.asyncio
async def test_wallet_transaction_records_completed_transaction(service, transactions, user_id):
    await _fund(service, user_id, 1000)
    result = await service.process_wallet_transaction(_wallet_tx(user_id, 250, reference_id="order-9"))
    txn = await transactions.get_by_id(result.transaction_id)
    assert txn.status is TransactionStatus.COMPLETED
    assert txn.reference_id == "order-9"
    assert txn.metadata["balance_before"] == 1000
    assert txn.metadata["balance_after"] == 750


@pytest.mark.asyncio
async def test_currency_mismatch_rejected(service, user_id):
    await _fund(service, user_id, 1000)
    with pytest.raises(PaymentError) as ei:
        await service.process_wallet_transaction(_wallet_tx(user_id, 10, "credit", currency="EUR"))
    assert ei.value.kind is PaymentErrorCode.INVALID_CURRENCY


@pytest.mark.asyncio
async def test_version_conflict_is_retried(service, wallets, user_id):
    await _fund(service, user_id, 1000)
    original_save = InMemoryWalletRepository.save
    calls = {"n": 0}

    async def flaky_save(wallet):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrentUpdateException("wallet", wallet.user_id)
        return await original_save(wallets, wallet)

    wallets.save = flaky_save
    result = await service.process_wallet_transaction(_wallet_tx(user_id, 100))
    assert result.new_balance == 900
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_storage_failure_wrapped(service, wallets, alerter, user_id):
    async def broken_get(user_id):
        raise ConnectionError("db down")

    wallets.get = broken_get
    with pytest.raises(PaymentError) as ei:
        await service.process_wallet_transaction(_wallet_tx(user_id, 100, "credit"))
    assert ei.value.kind is PaymentErrorCode.WALLET_TRANSACTION_FAILED
    assert isinstance(ei.value.__cause__, ConnectionError)
    assert alerter.alerts


@pytest.mark.asyncio
async def test_every_operation_audits_user_and_amount(service, audit_repo, user_id):
    await _fund(service, user_id, 800)
    with pytest.raises(PaymentError):
        await service.process_wallet_transaction(_wallet_tx(user_id, 5000))

    entries = await audit_repo.query(user_id=user_id)
    assert {e.amount for e in entries if e.action == "process_wallet_transaction"} == {800, 5000}
    assert {e.action for e in entries} == {
        "process_wallet_transaction",
        "process_wallet_transaction_success",
        "process_wallet_transaction_rejected",
    }


@pytest.mark.asyncio
async def test_missing_wallet_reads_as_zero(service):
    wallet = await service.get_wallet_balance(str(uuid.uuid4()))
    assert wallet.available_balance == 0
    assert wallet.total_balance == 0


@pytest.mark.asyncio
async def test_failed_record_insert_rolls_back_balance(service, transactions, user_id):
    await _fund(service, user_id, 50000)
    original_create = transactions.create
    calls = {"n": 0}

    async def create_failing_once(txn):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConnectionError("insert lost")
        return await original_create(txn)

    transactions.create = create_failing_once
    with pytest.raises(PaymentError) as ei:
        await service.process_wallet_transaction(_wallet_tx(user_id, 20000, key="k1"))
    assert ei.value.kind is PaymentErrorCode.WALLET_TRANSACTION_FAILED
    assert (await service.get_wallet_balance(user_id)).available_balance == 50000

    retry = await service.process_wallet_transaction(_wallet_tx(user_id, 20000, key="k1"))
    assert retry.new_balance == 30000
    records = await transactions.list_by_user(user_id)
    assert [t.metadata["type"] for t in records] == ["credit", "debit"]
