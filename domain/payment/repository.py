"""
支付仓储接口 - 定义交易与钱包数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Transaction, WalletBalance
from .status import TransactionStatus


class TransactionRepository(ABC):
    """交易仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易记录"""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        """根据ID获取交易"""
        pass

    @abstractmethod
    async def update(self, transaction: Transaction) -> Transaction:
        """更新交易记录（状态变更须先经状态机校验）"""
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TransactionStatus] = None,
    ) -> List[Transaction]:
        """获取用户的交易列表"""
        pass


class WalletRepository(ABC):
    """钱包仓储抽象接口"""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[WalletBalance]:
        """读取钱包余额"""
        pass

    @abstractmethod
    async def save(self, wallet: WalletBalance) -> WalletBalance:
        """写入钱包余额（不存在则创建）"""
        pass
