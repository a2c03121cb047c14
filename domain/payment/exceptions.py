"""
支付领域异常 - 统一的错误分类（kind / code / http status / details）
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import ERROR_CODE_TABLE, PaymentErrorCode


class PaymentError(BusinessException):
    """
    支付核心对调用方暴露的唯一错误类型

    kind 为错误分类（如 INSUFFICIENT_FUNDS），status_code 为类 HTTP 状态码。
    下游失败通过 ``raise ... from exc`` 保留原始异常。
    """

    def __init__(
        self,
        message: str,
        kind: PaymentErrorCode,
        *,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        field: Optional[str] = None,
    ) -> None:
        code, default_status = ERROR_CODE_TABLE[kind]
        self.kind = kind
        self.status_code = status_code or default_status
        super().__init__(
            code=int(code),
            message=message,
            error_type=kind.value,
            details=details,
            field=field,
        )

    @property
    def is_downstream_failure(self) -> bool:
        return self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.kind.value,
            "status_code": self.status_code,
            "details": self.details,
        }


class TransactionNotFoundError(PaymentError):
    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction {transaction_id} not found",
            PaymentErrorCode.TRANSACTION_NOT_FOUND,
            details={"transaction_id": transaction_id},
        )


class InsufficientFundsError(PaymentError):
    def __init__(self, user_id: str, available: int, requested: int):
        super().__init__(
            "Insufficient funds",
            PaymentErrorCode.INSUFFICIENT_FUNDS,
            details={"user_id": user_id, "available_balance": available, "requested": requested},
        )


class InvalidRefundAmountError(PaymentError):
    def __init__(self, requested: int, refundable: int):
        super().__init__(
            "Refund amount cannot exceed original transaction amount",
            PaymentErrorCode.INVALID_REFUND_AMOUNT,
            details={"requested": requested, "refundable": refundable},
            field="amount",
        )
