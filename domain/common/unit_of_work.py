"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import TransactionRepository, WalletRepository


class AbstractUnitOfWork(ABC):
    """
    事务边界：块内经 transactions / wallets 的写入要么全部生效，要么全部回滚

    正常退出时自动提交，异常退出时回滚。
    """

    transactions: TransactionRepository
    wallets: WalletRepository

    def __init__(self) -> None:
        self._committed = False

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
