"""
审计日志实体 - 只追加，不修改、不删除
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class AuditStatus(str, Enum):
    """审计结果状态"""
    INITIATED = "initiated"
    PROCESSING = "processing"
    CREATED = "created"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"
    REPLAYED = "replayed"


@dataclass(frozen=True)
class AuditLogEntry:
    """
    一条审计记录

    仅凭日志即可还原：谁、请求了什么、金额多少、是否成功。
    status 可以是 AuditStatus，也可以是交易状态值（状态变更记录）。
    """

    action: str
    user_id: str
    amount: int
    status: str
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def matches(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        action: Optional[str] = None,
    ) -> bool:
        if user_id is not None and self.user_id != user_id:
            return False
        if start is not None and self.timestamp < start:
            return False
        if end is not None and self.timestamp > end:
            return False
        if action is not None and self.action != action:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "user_id": self.user_id,
            "amount": self.amount,
            "status": self.status,
            "metadata": dict(self.metadata),
        }
