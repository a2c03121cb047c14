"""
Audit trail service.

Writes are best effort from the caller's point of view: a failed append is
logged as ``audit_log_write_failed`` and never reaches the financial
operation that produced it.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Union

from core.logging_config import get_logger
from domain.audit.entity import AuditLogEntry, AuditStatus
from domain.audit.repository import AuditLogRepository


logger = get_logger(__name__)

ANONYMOUS_USER = "anonymous"


class AuditService:
    def __init__(self, repository: AuditLogRepository) -> None:
        self.repository = repository

    async def record(
        self,
        action: str,
        *,
        user_id: Optional[str],
        amount: Optional[int],
        status: Union[AuditStatus, Enum, str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        """Append one entry; returns None when the write failed."""
        entry = AuditLogEntry(
            action=action,
            user_id=user_id or ANONYMOUS_USER,
            amount=amount or 0,
            status=status.value if isinstance(status, Enum) else str(status),
            metadata={k: v for k, v in (metadata or {}).items() if v is not None},
        )
        try:
            await self.repository.append(entry)
        except Exception as exc:
            logger.error(
                "audit_log_write_failed",
                action=entry.action,
                user_id=entry.user_id,
                amount=entry.amount,
                status=entry.status,
                error=str(exc),
            )
            return None
        logger.info(
            "payment_audit",
            action=entry.action,
            user_id=entry.user_id,
            amount=entry.amount,
            status=entry.status,
            audit_id=entry.id,
        )
        return entry

    async def query(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        return await self.repository.query(
            user_id=user_id, start=start, end=end, action=action, limit=limit
        )
