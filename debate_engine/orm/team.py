"""
Team model. Members are an ordered list of user ids.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, Enum

from debate_engine.core.db_types import JSONList
from debate_engine.orm.base import Base, isoformat, enum_value


class TeamStatus(PyEnum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    DISQUALIFIED = "disqualified"


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    members = Column(JSONList, nullable=False, default=list)
    status = Column(Enum(TeamStatus, create_constraint=True), nullable=False, default=TeamStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_teams_tournament_status', 'tournament_id', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "school_id": self.school_id,
            "name": self.name,
            "members": list(self.members or []),
            "status": enum_value(self.status),
            "created_at": isoformat(self.created_at),
        }
