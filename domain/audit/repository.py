"""
审计日志仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import AuditLogEntry


class AuditLogRepository(ABC):
    """审计日志仓储抽象接口（只追加）"""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> None:
        """追加一条审计记录"""
        pass

    @abstractmethod
    async def query(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[AuditLogEntry]:
        """按用户、时间范围、动作过滤，按时间升序返回"""
        pass
