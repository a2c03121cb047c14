"""Audit log domain package."""
from .entity import AuditLogEntry, AuditStatus
from .repository import AuditLogRepository

__all__ = ["AuditLogEntry", "AuditStatus", "AuditLogRepository"]
