"""Unit of Work 实现：SQLAlchemy 单会话事务，以及带撤销日志的内存版本"""
from __future__ import annotations

from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Transaction, WalletBalance
from domain.payment.repository import TransactionRepository, WalletRepository
from domain.payment.status import TransactionStatus
from infrastructure.repositories.memory import InMemoryTransactionRepository, InMemoryWalletRepository
from infrastructure.repositories.transaction_repository import SQLAlchemyTransactionRepository
from infrastructure.repositories.wallet_repository import SQLAlchemyWalletRepository


logger = get_logger(__name__)


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """一个会话、一个数据库事务；块内仓储共享该会话"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        super().__init__()
        self._session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        self.session = self._session_factory()
        await self.session.begin()
        self.transactions = SQLAlchemyTransactionRepository(session=self.session)
        self.wallets = SQLAlchemyWalletRepository(session=self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self.session is not None:
                await self.session.close()
                self.session = None

    async def commit(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session is not None and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
        logger.debug("unit_of_work_rolled_back")


class _JournaledTransactions(TransactionRepository):
    def __init__(self, repo: InMemoryTransactionRepository, undo: List[Callable[[], None]]) -> None:
        self._repo = repo
        self._undo = undo

    async def create(self, transaction: Transaction) -> Transaction:
        created = await self._repo.create(transaction)
        self._undo.append(lambda: self._repo.discard(transaction.id))
        return created

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        return await self._repo.get_by_id(transaction_id)

    async def update(self, transaction: Transaction) -> Transaction:
        previous = self._repo.snapshot(transaction.id)
        updated = await self._repo.update(transaction)
        if previous is not None:
            self._undo.append(lambda: self._repo.restore(previous))
        return updated

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TransactionStatus] = None,
    ) -> List[Transaction]:
        return await self._repo.list_by_user(user_id, skip=skip, limit=limit, status=status)


class _JournaledWallets(WalletRepository):
    def __init__(self, repo: InMemoryWalletRepository, undo: List[Callable[[], None]]) -> None:
        self._repo = repo
        self._undo = undo

    async def get(self, user_id: str) -> Optional[WalletBalance]:
        return await self._repo.get(user_id)

    async def save(self, wallet: WalletBalance) -> WalletBalance:
        previous = self._repo.snapshot(wallet.user_id)
        saved = await self._repo.save(wallet)
        self._undo.append(lambda: self._repo.restore(wallet.user_id, previous))
        return saved


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    内存工作单元：写入立即生效并记录撤销动作，回滚时逆序撤销

    同一钱包/交易的并发写入由服务层的按键锁串行化，撤销只触及本单元写过的键。
    """

    def __init__(
        self,
        transactions: InMemoryTransactionRepository,
        wallets: InMemoryWalletRepository,
    ) -> None:
        super().__init__()
        self._transaction_store = transactions
        self._wallet_store = wallets
        self._undo: List[Callable[[], None]] = []

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._undo = []
        self._committed = False
        self.transactions = _JournaledTransactions(self._transaction_store, self._undo)
        self.wallets = _JournaledWallets(self._wallet_store, self._undo)
        return self

    async def commit(self) -> None:
        self._undo.clear()
        self._committed = True

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._committed = False
        logger.debug("unit_of_work_rolled_back")
