"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import TransactionModel, WalletBalanceModel
from .audit_log import AuditLogModel

__all__ = [
    "Base",
    "metadata",
    "TransactionModel",
    "WalletBalanceModel",
    "AuditLogModel",
]
