"""
审计日志数据库模型（只追加）
"""
from sqlalchemy import Column, BigInteger, String, DateTime, JSON, Index

from .base import Base


class AuditLogModel(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, comment="审计记录ID")
    timestamp = Column(DateTime(timezone=True), nullable=False, comment="记录时间")
    action = Column(String(100), nullable=False, index=True, comment="动作")
    user_id = Column(String(64), nullable=False, index=True, comment="操作用户")
    amount = Column(BigInteger, nullable=False, default=0, comment="金额（分）")
    status = Column(String(30), nullable=False, comment="结果状态")
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        Index("ix_audit_logs_user_timestamp", "user_id", "timestamp"),
    )

    def __repr__(self):
        return f"<AuditLogModel(action='{self.action}', user_id='{self.user_id}', status='{self.status}')>"
