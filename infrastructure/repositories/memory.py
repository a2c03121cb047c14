"""
内存仓储实现 - 用于开发环境与测试

每个实例持有独立状态，由服务容器显式创建，不使用模块级全局变量。
返回的实体均为副本，调用方修改后必须显式 update/save 才会生效。
"""
from __future__ import annotations

import copy
from datetime import datetime
from typing import List, Optional

from domain.audit.entity import AuditLogEntry
from domain.audit.repository import AuditLogRepository
from domain.common.exceptions import ConcurrentUpdateException
from domain.payment.entity import Transaction, WalletBalance
from domain.payment.repository import TransactionRepository, WalletRepository
from domain.payment.status import TransactionStatus


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self) -> None:
        self._items: dict[str, Transaction] = {}

    async def create(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._items:
            raise ValueError(f"Transaction {transaction.id} already exists")
        self._items[transaction.id] = copy.deepcopy(transaction)
        return copy.deepcopy(transaction)

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        txn = self._items.get(transaction_id)
        return copy.deepcopy(txn) if txn else None

    async def update(self, transaction: Transaction) -> Transaction:
        if transaction.id not in self._items:
            raise KeyError(transaction.id)
        self._items[transaction.id] = copy.deepcopy(transaction)
        return copy.deepcopy(transaction)

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TransactionStatus] = None,
    ) -> List[Transaction]:
        items = [
            t for t in self._items.values()
            if t.user_id == user_id and (status is None or t.status == status)
        ]
        items.sort(key=lambda t: t.created_at)
        return [copy.deepcopy(t) for t in items[skip:skip + limit]]

    def snapshot(self, transaction_id: str) -> Optional[Transaction]:
        txn = self._items.get(transaction_id)
        return copy.deepcopy(txn) if txn else None

    def discard(self, transaction_id: str) -> None:
        self._items.pop(transaction_id, None)

    def restore(self, transaction: Transaction) -> None:
        self._items[transaction.id] = copy.deepcopy(transaction)


class InMemoryWalletRepository(WalletRepository):
    def __init__(self) -> None:
        self._items: dict[str, WalletBalance] = {}

    async def get(self, user_id: str) -> Optional[WalletBalance]:
        wallet = self._items.get(user_id)
        return copy.deepcopy(wallet) if wallet else None

    async def save(self, wallet: WalletBalance) -> WalletBalance:
        current = self._items.get(wallet.user_id)
        current_version = current.version if current else 0
        if wallet.version != current_version:
            raise ConcurrentUpdateException("wallet", wallet.user_id)
        wallet.version = current_version + 1
        self._items[wallet.user_id] = copy.deepcopy(wallet)
        return wallet

    def snapshot(self, user_id: str) -> Optional[WalletBalance]:
        wallet = self._items.get(user_id)
        return copy.deepcopy(wallet) if wallet else None

    def restore(self, user_id: str, wallet: Optional[WalletBalance]) -> None:
        """把某个钱包恢复为给定快照；None 表示该钱包此前不存在"""
        if wallet is None:
            self._items.pop(user_id, None)
        else:
            self._items[user_id] = copy.deepcopy(wallet)


class InMemoryAuditLogRepository(AuditLogRepository):
    def __init__(self) -> None:
        self._entries: list[AuditLogEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    async def append(self, entry: AuditLogEntry) -> None:
        # list.append 是原子操作，条目本身不可变
        self._entries.append(entry)

    async def query(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        result = [e for e in list(self._entries) if e.matches(user_id, start, end, action)]
        result.sort(key=lambda e: e.timestamp)
        return result[:limit] if limit else result
