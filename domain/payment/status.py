"""
交易状态机 - 所有状态变更必须经过此处校验
"""
from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Mapping

from domain.payment.exceptions import PaymentError
from shared.codes.payment_codes import PaymentErrorCode


class TransactionStatus(str, Enum):
    """交易状态枚举"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"      # 终态
    REFUNDED = "refunded"        # 终态


VALID_TRANSITIONS: Mapping[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.PROCESSING,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
    }),
    TransactionStatus.PROCESSING: frozenset({
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
    }),
    TransactionStatus.COMPLETED: frozenset({TransactionStatus.REFUNDED}),
    # 失败后允许重试
    TransactionStatus.FAILED: frozenset({TransactionStatus.PENDING}),
    TransactionStatus.CANCELLED: frozenset(),
    TransactionStatus.REFUNDED: frozenset(),
}


def allowed_transitions(current: TransactionStatus) -> FrozenSet[TransactionStatus]:
    return VALID_TRANSITIONS.get(TransactionStatus(current), frozenset())


def is_valid_transition(current: TransactionStatus, requested: TransactionStatus) -> bool:
    try:
        cur, req = TransactionStatus(current), TransactionStatus(requested)
    except ValueError:
        return False
    return req in VALID_TRANSITIONS[cur]


def is_terminal(status: TransactionStatus) -> bool:
    return not allowed_transitions(status)


def ensure_transition(current: TransactionStatus, requested: TransactionStatus) -> None:
    """非法转换直接拒绝，不做任何隐式修正"""
    if not is_valid_transition(current, requested):
        cur = getattr(current, "value", current)
        req = getattr(requested, "value", requested)
        raise PaymentError(
            f"Invalid status transition from {cur} to {req}",
            PaymentErrorCode.INVALID_STATUS_TRANSITION,
            details={
                "current_status": cur,
                "requested_status": req,
                "allowed": sorted(s.value for s in allowed_transitions(current))
                if cur in {s.value for s in TransactionStatus} else [],
            },
            field="status",
        )
