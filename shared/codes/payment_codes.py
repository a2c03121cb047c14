"""
Payment specific codes: error kinds surfaced to callers, their numeric
business codes and HTTP-like statuses, plus provider status mapping.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentErrorCode(str, Enum):
    """Error kinds surfaced by the payment core."""

    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_CURRENCY = "INVALID_CURRENCY"
    INVALID_IDEMPOTENCY_KEY = "INVALID_IDEMPOTENCY_KEY"
    IDEMPOTENCY_KEY_IN_PROGRESS = "IDEMPOTENCY_KEY_IN_PROGRESS"
    INVALID_REFUND_AMOUNT = "INVALID_REFUND_AMOUNT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    PAYMENT_INTENT_FAILED = "PAYMENT_INTENT_FAILED"
    REFUND_FAILED = "REFUND_FAILED"
    WALLET_TRANSACTION_FAILED = "WALLET_TRANSACTION_FAILED"
    STATUS_UPDATE_FAILED = "STATUS_UPDATE_FAILED"


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Request validation (21xxx)
    INVALID_AMOUNT = 21000
    INVALID_CURRENCY = 21001
    INVALID_IDEMPOTENCY_KEY = 21002
    IDEMPOTENCY_KEY_IN_PROGRESS = 21003

    # Business rule violations (22xxx)
    INVALID_REFUND_AMOUNT = 22000
    INSUFFICIENT_FUNDS = 22001
    INVALID_STATUS_TRANSITION = 22002
    TRANSACTION_NOT_FOUND = 22003

    # Downstream failures (6xxxx)
    PAYMENT_INTENT_FAILED = 60010
    REFUND_FAILED = 60011
    WALLET_TRANSACTION_FAILED = 60012
    STATUS_UPDATE_FAILED = 60013

    # Provider/Network errors
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003


# kind -> (business code, http-like status)
ERROR_CODE_TABLE: dict[PaymentErrorCode, tuple[PaymentCode, int]] = {
    PaymentErrorCode.INVALID_AMOUNT: (PaymentCode.INVALID_AMOUNT, 400),
    PaymentErrorCode.INVALID_CURRENCY: (PaymentCode.INVALID_CURRENCY, 400),
    PaymentErrorCode.INVALID_IDEMPOTENCY_KEY: (PaymentCode.INVALID_IDEMPOTENCY_KEY, 400),
    PaymentErrorCode.IDEMPOTENCY_KEY_IN_PROGRESS: (PaymentCode.IDEMPOTENCY_KEY_IN_PROGRESS, 409),
    PaymentErrorCode.INVALID_REFUND_AMOUNT: (PaymentCode.INVALID_REFUND_AMOUNT, 400),
    PaymentErrorCode.INSUFFICIENT_FUNDS: (PaymentCode.INSUFFICIENT_FUNDS, 400),
    PaymentErrorCode.INVALID_STATUS_TRANSITION: (PaymentCode.INVALID_STATUS_TRANSITION, 400),
    PaymentErrorCode.TRANSACTION_NOT_FOUND: (PaymentCode.TRANSACTION_NOT_FOUND, 404),
    PaymentErrorCode.PAYMENT_INTENT_FAILED: (PaymentCode.PAYMENT_INTENT_FAILED, 500),
    PaymentErrorCode.REFUND_FAILED: (PaymentCode.REFUND_FAILED, 500),
    PaymentErrorCode.WALLET_TRANSACTION_FAILED: (PaymentCode.WALLET_TRANSACTION_FAILED, 500),
    PaymentErrorCode.STATUS_UPDATE_FAILED: (PaymentCode.STATUS_UPDATE_FAILED, 500),
}


# Provider→internal status mapping (extend per provider)
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "pending",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "processing",
        "requires_capture": "processing",
        "succeeded": "completed",
        "canceled": "cancelled",
        "pending": "pending",
        "failed": "failed",
    },
    "fake": {},
}
