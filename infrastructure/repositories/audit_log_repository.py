"""
审计日志仓储实现（只追加）
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.audit.entity import AuditLogEntry
from domain.audit.repository import AuditLogRepository
from infrastructure.models.audit_log import AuditLogModel


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLAlchemyAuditLogRepository(AuditLogRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, entry: AuditLogEntry) -> None:
        async with self._session_factory() as session, session.begin():
            session.add(AuditLogModel(
                id=entry.id,
                timestamp=_utc(entry.timestamp),
                action=entry.action,
                user_id=entry.user_id,
                amount=entry.amount,
                status=entry.status,
                extra_metadata=dict(entry.metadata),
            ))

    async def query(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        query = select(AuditLogModel)
        if user_id is not None:
            query = query.where(AuditLogModel.user_id == user_id)
        if start is not None:
            query = query.where(AuditLogModel.timestamp >= _utc(start))
        if end is not None:
            query = query.where(AuditLogModel.timestamp <= _utc(end))
        if action is not None:
            query = query.where(AuditLogModel.action == action)
        query = query.order_by(AuditLogModel.timestamp.asc(), AuditLogModel.id.asc())
        if limit:
            query = query.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return [
                AuditLogEntry(
                    id=m.id,
                    timestamp=_utc(m.timestamp),
                    action=m.action,
                    user_id=m.user_id,
                    amount=m.amount,
                    status=m.status,
                    metadata=dict(m.extra_metadata or {}),
                )
                for m in result.scalars().all()
            ]
