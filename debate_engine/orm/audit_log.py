"""
Append-only audit trail written by DatabaseAuditSink.
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, Index, Text

from debate_engine.orm.base import Base, isoformat


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)
    action = Column(String(100), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(64), nullable=True)
    description = Column(Text, nullable=False)
    previous_state = Column(Text, nullable=True)
    new_state = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "description": self.description,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "created_at": isoformat(self.created_at),
        }
