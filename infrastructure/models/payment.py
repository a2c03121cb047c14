"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, JSON, Index
)
from datetime import datetime, timezone

from .base import Base


class TransactionModel(Base):
    """
    交易数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Transaction 中
    """
    __tablename__ = "transactions"

    # 主键（UUID 字符串）
    id = Column(String(36), primary_key=True, comment="交易ID")
    user_id = Column(String(36), nullable=True, index=True, comment="用户ID")

    # 金额信息（最小货币单位整数）
    amount = Column(BigInteger, nullable=False, comment="金额（分）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")
    refunded_amount = Column(BigInteger, nullable=False, default=0, comment="已退款金额（分）")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="交易状态: pending/processing/completed/failed/cancelled/refunded"
    )
    payment_method = Column(String(20), nullable=False, comment="支付方式: card/bank/wallet/crypto")
    description = Column(String(500), nullable=False, default="", comment="描述")
    reference_id = Column(String(200), nullable=True, index=True, comment="外部引用ID（如支付渠道ID）")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, comment="更新时间")

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("ix_transactions_user_status", "user_id", "status"),
        Index("ix_transactions_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<TransactionModel(id='{self.id}', user_id='{self.user_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )


class WalletBalanceModel(Base):
    """钱包余额数据库模型（每个用户一行）"""
    __tablename__ = "wallet_balances"

    user_id = Column(String(36), primary_key=True, comment="用户ID")
    available_balance = Column(BigInteger, nullable=False, default=0, comment="可用余额（分）")
    pending_balance = Column(BigInteger, nullable=False, default=0, comment="待结算余额（分）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    # 乐观锁版本号
    version = Column(Integer, nullable=False, default=0, comment="版本号")
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=True,
        comment="更新时间"
    )

    def __repr__(self):
        return f"<WalletBalanceModel(user_id='{self.user_id}', available={self.available_balance})>"
