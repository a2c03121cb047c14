import uuid

import pytest
import pytest_asyncio

from domain.payment.entity import Transaction, WalletBalance, WalletTransactionType
from domain.payment.status import TransactionStatus
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.repositories.memory import InMemoryTransactionRepository, InMemoryWalletRepository
from infrastructure.repositories.transaction_repository import SQLAlchemyTransactionRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository
from infrastructure.unit_of_work import InMemoryUnitOfWork, SQLAlchemyUnitOfWork


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'uow.db'}", echo=False)
    await create_tables(engine)
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


def _record(txn_id=None, user_id="u1"):
    return Transaction(
        id=txn_id or str(uuid.uuid4()), user_id=user_id, amount=500, currency="USD",
        status=TransactionStatus.COMPLETED, payment_method="wallet", description="debit",
        metadata={"type": "debit"},
    )


def _funded_wallet(amount):
    wallet = WalletBalance(user_id="u1")
    wallet.apply(WalletTransactionType.CREDIT, amount)
    return wallet


@pytest.mark.asyncio
async def test_memory_unit_of_work_rolls_back_every_write():
    transactions, wallets = InMemoryTransactionRepository(), InMemoryWalletRepository()
    await wallets.save(_funded_wallet(1000))

    with pytest.raises(RuntimeError):
        async with InMemoryUnitOfWork(transactions, wallets) as uow:
            wallet = await uow.wallets.get("u1")
            wallet.apply(WalletTransactionType.DEBIT, 500)
            await uow.wallets.save(wallet)
            await uow.wallets.save(WalletBalance(user_id="u2", available_balance=7))
            await uow.transactions.create(_record())
            raise RuntimeError("boom")

    assert (await wallets.get("u1")).available_balance == 1000
    assert (await wallets.get("u1")).version == 1
    assert await wallets.get("u2") is None
    assert await transactions.list_by_user("u1") == []


@pytest.mark.asyncio
async def test_memory_unit_of_work_commits_on_clean_exit():
    transactions, wallets = InMemoryTransactionRepository(), InMemoryWalletRepository()
    async with InMemoryUnitOfWork(transactions, wallets) as uow:
        await uow.wallets.save(_funded_wallet(1000))
        await uow.transactions.create(_record())

    assert (await wallets.get("u1")).available_balance == 1000
    assert len(await transactions.list_by_user("u1")) == 1


@pytest.mark.asyncio
async def test_sqlalchemy_unit_of_work_rolls_back_wallet_when_insert_fails(session_factory):
    wallets = SQLAlchemyWalletRepository(session_factory)
    transactions = SQLAlchemyTransactionRepository(session_factory)
    await wallets.save(_funded_wallet(1000))
    existing = await transactions.create(_record())

    with pytest.raises(Exception):
        async with SQLAlchemyUnitOfWork(session_factory) as uow:
            wallet = await uow.wallets.get("u1")
            wallet.apply(WalletTransactionType.DEBIT, 500)
            await uow.wallets.save(wallet)
            # duplicate primary key
            await uow.transactions.create(_record(existing.id))

    stored = await wallets.get("u1")
    assert stored.available_balance == 1000
    assert stored.version == 1
    assert len(await transactions.list_by_user("u1")) == 1


@pytest.mark.asyncio
async def test_sqlalchemy_unit_of_work_commits_both_writes(session_factory):
    async with SQLAlchemyUnitOfWork(session_factory) as uow:
        await uow.wallets.save(_funded_wallet(1000))
        await uow.transactions.create(_record())

    assert (await SQLAlchemyWalletRepository(session_factory).get("u1")).available_balance == 1000
    assert len(await SQLAlchemyTransactionRepository(session_factory).list_by_user("u1")) == 1
