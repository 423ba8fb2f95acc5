"""
Tournament and Round models.

A tournament owns its rounds; round numbers are unique per tournament.
Status columns are only ever changed through state_machines.lifecycle.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey,
    Index, UniqueConstraint, Enum, Text
)

from debate_engine.orm.base import Base, isoformat, enum_value


# =============================================================================
# Enums
# =============================================================================

class TournamentStatus(PyEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RoundType(PyEnum):
    PRELIMINARY = "preliminary"
    ELIMINATION = "elimination"
    FINAL = "final"


class RoundStatus(PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"


# =============================================================================
# Model 1: Tournament
# =============================================================================

class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    format = Column(String(50), nullable=False, default="WSDC")
    team_size = Column(Integer, nullable=False, default=3)
    judges_per_debate = Column(Integer, nullable=False, default=1)
    prelim_rounds = Column(Integer, nullable=False, default=0)
    elimination_rounds = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(TournamentStatus, create_constraint=True),
        nullable=False,
        default=TournamentStatus.DRAFT
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    @property
    def total_rounds(self) -> int:
        return (self.prelim_rounds or 0) + (self.elimination_rounds or 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "format": self.format,
            "team_size": self.team_size,
            "judges_per_debate": self.judges_per_debate,
            "prelim_rounds": self.prelim_rounds,
            "elimination_rounds": self.elimination_rounds,
            "status": enum_value(self.status),
            "created_at": isoformat(self.created_at),
        }


# =============================================================================
# Model 2: Round
# =============================================================================

class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    round_number = Column(Integer, nullable=False)
    type = Column(Enum(RoundType, create_constraint=True), nullable=False)
    status = Column(
        Enum(RoundStatus, create_constraint=True),
        nullable=False,
        default=RoundStatus.PENDING
    )
    motion = Column(Text, nullable=False, default="")
    is_impromptu = Column(Boolean, nullable=False, default=False)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('tournament_id', 'round_number', name='uq_round_tournament_number'),
        Index('idx_rounds_tournament_status', 'tournament_id', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "round_number": self.round_number,
            "type": enum_value(self.type),
            "status": enum_value(self.status),
            "motion": self.motion,
            "is_impromptu": self.is_impromptu,
            "start_time": isoformat(self.start_time),
            "end_time": isoformat(self.end_time),
        }
