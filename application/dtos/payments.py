"""
Payment DTOs (Pydantic v2) used at application boundaries.

Amounts are integer minor units everywhere (StrictInt: floats are rejected
at the boundary). Bounds are checked by the service so that they surface as
INVALID_AMOUNT rather than a schema error.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from domain.audit.entity import AuditLogEntry
from domain.payment.entity import (
    PaymentMethod,
    RefundReason,
    Transaction,
    WalletBalance,
    WalletTransactionType,
)
from domain.payment.money import Currency
from domain.payment.status import TransactionStatus


IDEMPOTENCY_KEY_MAX_LENGTH = 255


def _uuid_str(v: Any) -> str:
    try:
        return str(uuid.UUID(str(v)))
    except (ValueError, AttributeError, TypeError):
        raise ValueError("must be a UUID") from None


class _IdempotentRequest(BaseModel):
    idempotency_key: str = Field(min_length=1, max_length=IDEMPOTENCY_KEY_MAX_LENGTH)

    @field_validator("idempotency_key")
    @classmethod
    def _non_blank_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("idempotency_key must not be blank")
        return v


class CreatePaymentIntent(_IdempotentRequest):
    amount: StrictInt
    currency: Currency = Currency.USD
    payment_method: PaymentMethod
    customer_id: Optional[str] = None
    description: str = Field(min_length=1, max_length=500)
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("customer_id")
    @classmethod
    def _customer_uuid(cls, v: Optional[str]) -> Optional[str]:
        return _uuid_str(v) if v is not None else None


class RefundRequest(_IdempotentRequest):
    transaction_id: str
    amount: Optional[StrictInt] = None  # omitted -> refund the remaining amount
    reason: RefundReason
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("transaction_id")
    @classmethod
    def _transaction_uuid(cls, v: str) -> str:
        return _uuid_str(v)


class WalletTransactionRequest(_IdempotentRequest):
    user_id: str
    amount: StrictInt
    type: WalletTransactionType
    description: str = Field(min_length=1, max_length=500)
    currency: Currency = Currency.USD
    reference_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("user_id")
    @classmethod
    def _user_uuid(cls, v: str) -> str:
        return _uuid_str(v)


class UpdateTransactionStatus(BaseModel):
    transaction_id: str
    new_status: TransactionStatus
    user_id: str

    @field_validator("transaction_id")
    @classmethod
    def _transaction_uuid(cls, v: str) -> str:
        return _uuid_str(v)


# ---- results -------------------------------------------------------------

class PaymentIntentResult(BaseModel):
    payment_intent_id: str
    client_secret: str
    transaction_id: str


class RefundResult(BaseModel):
    refund_id: str
    transaction_id: str
    amount: int
    status: str
    user_id: Optional[str] = None  # owner of the refunded transaction


class WalletTransactionResult(BaseModel):
    transaction_id: str
    new_balance: int


class TransactionView(BaseModel):
    id: str
    user_id: Optional[str]
    amount: int
    currency: Currency
    status: TransactionStatus
    payment_method: PaymentMethod
    description: str
    reference_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    refunded_amount: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, txn: Transaction) -> "TransactionView":
        return cls(
            id=txn.id,
            user_id=txn.user_id,
            amount=txn.amount,
            currency=txn.currency,
            status=txn.status,
            payment_method=txn.payment_method,
            description=txn.description,
            reference_id=txn.reference_id,
            metadata=txn.metadata,
            refunded_amount=txn.refunded_amount,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
        )


class WalletBalanceView(BaseModel):
    user_id: str
    available_balance: int
    pending_balance: int
    total_balance: int
    currency: Currency

    @classmethod
    def from_entity(cls, wallet: WalletBalance) -> "WalletBalanceView":
        return cls(
            user_id=wallet.user_id,
            available_balance=wallet.available_balance,
            pending_balance=wallet.pending_balance,
            total_balance=wallet.total_balance,
            currency=wallet.currency,
        )


class AuditLogView(BaseModel):
    id: str
    timestamp: datetime
    action: str
    user_id: str
    amount: int
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_entity(cls, entry: AuditLogEntry) -> "AuditLogView":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            action=entry.action,
            user_id=entry.user_id,
            amount=entry.amount,
            status=entry.status,
            metadata=dict(entry.metadata),
        )


# ---- processor boundary --------------------------------------------------

class ProcessorIntent(BaseModel):
    id: str
    client_secret: str
    status: str = "pending"
    provider: str = "fake"

    model_config = ConfigDict(frozen=True)


class ProcessorRefund(BaseModel):
    id: str
    status: str
    provider: str = "fake"

    model_config = ConfigDict(frozen=True)
