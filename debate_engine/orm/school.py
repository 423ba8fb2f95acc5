"""
School model. Teams and judges are affiliated with at most one school;
shared affiliation drives conflict detection.
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime

from debate_engine.orm.base import Base, isoformat


class School(Base):
    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "created_at": isoformat(self.created_at),
        }

    def to_summary(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type}
