import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from domain.audit.entity import AuditLogEntry
from domain.common.exceptions import ConcurrentUpdateException
from domain.payment.entity import Transaction, WalletBalance, WalletTransactionType
from domain.payment.exceptions import TransactionNotFoundError
from domain.payment.status import TransactionStatus
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.repositories.audit_log_repository import SQLAlchemyAuditLogRepository
from infrastructure.repositories.transaction_repository import SQLAlchemyTransactionRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}", echo=False)
    await create_tables(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


def _txn(user_id="u1", **kw):
    data = dict(
        id=str(uuid.uuid4()), user_id=user_id, amount=2500, currency="USD",
        status=TransactionStatus.PENDING, payment_method="card", description="order",
        reference_id="pi_1", metadata={"k": "v"},
    )
    data.update(kw)
    return Transaction(**data)


@pytest.mark.asyncio
async def test_transaction_round_trip(session_factory):
    repo = SQLAlchemyTransactionRepository(session_factory)
    txn = await repo.create(_txn())

    loaded = await repo.get_by_id(txn.id)
    assert loaded.amount == 2500
    assert loaded.status is TransactionStatus.PENDING
    assert loaded.metadata == {"k": "v"}
    assert loaded.created_at.tzinfo is not None

    loaded.transition_to(TransactionStatus.PROCESSING)
    await repo.update(loaded)
    assert (await repo.get_by_id(txn.id)).status is TransactionStatus.PROCESSING
    assert await repo.get_by_id(str(uuid.uuid4())) is None


@pytest.mark.asyncio
async def test_update_missing_transaction(session_factory):
    repo = SQLAlchemyTransactionRepository(session_factory)
    with pytest.raises(TransactionNotFoundError):
        await repo.update(_txn())


@pytest.mark.asyncio
async def test_list_by_user_filters_status(session_factory):
    repo = SQLAlchemyTransactionRepository(session_factory)
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    await repo.create(_txn(created_at=base))
    await repo.create(_txn(created_at=base + timedelta(seconds=1), status=TransactionStatus.COMPLETED))
    await repo.create(_txn(user_id="u2"))

    assert len(await repo.list_by_user("u1")) == 2
    completed = await repo.list_by_user("u1", status=TransactionStatus.COMPLETED)
    assert [t.status for t in completed] == [TransactionStatus.COMPLETED]


@pytest.mark.asyncio
async def test_wallet_optimistic_versioning(session_factory):
    repo = SQLAlchemyWalletRepository(session_factory)
    assert await repo.get("u1") is None

    wallet = WalletBalance(user_id="u1")
    wallet.apply(WalletTransactionType.CREDIT, 1000)
    await repo.save(wallet)
    assert wallet.version == 1

    a = await repo.get("u1")
    b = await repo.get("u1")
    a.apply(WalletTransactionType.DEBIT, 100)
    await repo.save(a)

    b.apply(WalletTransactionType.DEBIT, 200)
    with pytest.raises(ConcurrentUpdateException):
        await repo.save(b)

    stored = await repo.get("u1")
    assert stored.available_balance == 900
    assert stored.version == 2


@pytest.mark.asyncio
async def test_wallet_double_insert_conflicts(session_factory):
    repo = SQLAlchemyWalletRepository(session_factory)
    await repo.save(WalletBalance(user_id="u1", available_balance=5))
    with pytest.raises(ConcurrentUpdateException):
        await repo.save(WalletBalance(user_id="u1", available_balance=7))


@pytest.mark.asyncio
async def test_audit_log_query(session_factory):
    repo = SQLAlchemyAuditLogRepository(session_factory)
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for i in range(4):
        await repo.append(AuditLogEntry(
            action="process_refund" if i % 2 else "create_payment_intent",
            user_id="u1" if i < 3 else "u2",
            amount=100 * i,
            status="completed",
            metadata={"i": i},
            timestamp=base + timedelta(hours=i),
        ))

    assert [e.amount for e in await repo.query(user_id="u1")] == [0, 100, 200]
    assert [e.amount for e in await repo.query(action="process_refund")] == [100, 300]
    window = await repo.query(start=base + timedelta(hours=1), end=base + timedelta(hours=2))
    assert [e.metadata["i"] for e in window] == [1, 2]
    assert len(await repo.query(limit=1)) == 1
