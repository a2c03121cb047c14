"""
支付领域实体 - 交易聚合根、钱包余额与退款
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import InsufficientFundsError
from domain.payment.money import Currency, ensure_valid_amount, parse_currency
from domain.payment.status import TransactionStatus, ensure_transition, is_terminal


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK = "bank"
    WALLET = "wallet"
    CRYPTO = "crypto"


class RefundReason(str, Enum):
    DUPLICATE = "duplicate"
    FRAUDULENT = "fraudulent"
    REQUESTED_BY_CUSTOMER = "requested_by_customer"
    OTHER = "other"


class WalletTransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    TRANSFER = "transfer"
    REFUND = "refund"

    def signed(self, amount: int) -> int:
        """借记为负，其余为正"""
        return -amount if self is WalletTransactionType.DEBIT else amount


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Transaction:
    """
    交易聚合根

    业务规则：
    1. 金额为正整数（最小单位）且不超过上限
    2. 状态只能通过 transition_to 经状态机变更
    3. 累计退款金额不能超过交易金额
    4. 交易不会被删除，只会进入终态
    """

    id: str
    user_id: Optional[str]
    amount: int
    currency: Currency
    status: TransactionStatus
    payment_method: PaymentMethod
    description: str
    reference_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    refunded_amount: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        ensure_valid_amount(self.amount)
        self.currency = parse_currency(self.currency)
        self.status = TransactionStatus(self.status)
        self.payment_method = PaymentMethod(self.payment_method)
        if self.refunded_amount < 0 or self.refunded_amount > self.amount:
            raise DomainValidationException(
                f"Refunded amount {self.refunded_amount} outside [0, {self.amount}]",
                field="refunded_amount",
            )
        self.created_at = _ensure_utc(self.created_at) or _utcnow()
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    @property
    def refundable_amount(self) -> int:
        return self.amount - self.refunded_amount

    @property
    def is_fully_refunded(self) -> bool:
        return self.refunded_amount >= self.amount

    def is_final_status(self) -> bool:
        return is_terminal(self.status)

    def transition_to(self, new_status: TransactionStatus) -> TransactionStatus:
        """经状态机校验后变更状态，返回旧状态"""
        new_status = TransactionStatus(new_status)
        ensure_transition(self.status, new_status)
        previous = self.status
        self.status = new_status
        self.updated_at = _utcnow()
        return previous

    def apply_refund(self, amount: int) -> None:
        """记录退款金额（金额上限由调用方先行校验）"""
        if amount <= 0 or amount > self.refundable_amount:
            raise DomainValidationException(
                f"Refund amount {amount} exceeds refundable {self.refundable_amount}",
                field="amount",
            )
        self.refunded_amount += amount
        self.updated_at = _utcnow()

    def record_refund(self, refund: Refund) -> None:
        """累计退款金额并把退款摘要追加到 metadata["refunds"]"""
        if refund.transaction_id != self.id:
            raise DomainValidationException("Refund belongs to another transaction", field="transaction_id")
        self.apply_refund(refund.amount)
        history = list(self.metadata.get("refunds", []))
        history.append(refund.summary())
        self.metadata = {**self.metadata, "refunds": history}


@dataclass
class WalletBalance:
    """
    钱包余额

    不变量：available_balance 永不为负；total = available + pending
    """

    user_id: str
    available_balance: int = 0
    pending_balance: int = 0
    currency: Currency = Currency.USD
    updated_at: Optional[datetime] = None
    # 乐观锁版本号，由仓储在每次保存时递增
    version: int = 0

    def __post_init__(self):
        self.currency = parse_currency(self.currency)
        if self.available_balance < 0 or self.pending_balance < 0:
            raise DomainValidationException("Wallet balance cannot be negative", field="available_balance")
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def total_balance(self) -> int:
        return self.available_balance + self.pending_balance

    def preview(self, adjustment: int) -> int:
        return self.available_balance + adjustment

    def apply(self, kind: WalletTransactionType, amount: int) -> int:
        """应用一次余额变更；余额不足时在任何修改之前拒绝"""
        new_balance = self.preview(kind.signed(amount))
        if new_balance < 0:
            raise InsufficientFundsError(self.user_id, self.available_balance, amount)
        self.available_balance = new_balance
        self.updated_at = _utcnow()
        return new_balance


@dataclass
class Refund:
    """退款实体 - 交易聚合的一部分"""

    refund_id: str
    transaction_id: str
    amount: int
    reason: RefundReason
    status: str
    currency: Currency = Currency.USD
    created_at: Optional[datetime] = None

    def __post_init__(self):
        ensure_valid_amount(self.amount)
        self.reason = RefundReason(self.reason)
        self.created_at = _ensure_utc(self.created_at) or _utcnow()
        self.currency = parse_currency(self.currency)

    def summary(self) -> dict[str, Any]:
        return {
            "refund_id": self.refund_id,
            "amount": self.amount,
            "reason": self.reason.value,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }
