"""
Debate model.

One scheduled matchup inside a round. A bye ("public speaking") debate
carries a single team in the proposition slot. Once a debate is
inProgress or completed the pairing store no longer touches it.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Float, ForeignKey, Index, Enum
)

from debate_engine.core.db_types import JSONList
from debate_engine.orm.base import Base, isoformat, enum_value


class DebateStatus(PyEnum):
    PENDING = "pending"
    IN_PROGRESS = "inProgress"
    COMPLETED = "completed"
    NO_SHOW = "noShow"


class Side(PyEnum):
    PROPOSITION = "proposition"
    OPPOSITION = "opposition"


class Debate(Base):
    __tablename__ = "debates"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(Integer, ForeignKey("rounds.id", ondelete="CASCADE"), nullable=False)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    room_name = Column(String(100), nullable=False)
    proposition_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    opposition_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    judges = Column(JSONList, nullable=False, default=list)
    head_judge_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(Enum(DebateStatus, create_constraint=True), nullable=False, default=DebateStatus.PENDING)
    is_public_speaking = Column(Boolean, nullable=False, default=False)

    # Outcome, written by the ballot consensus engine
    winning_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    winning_team_position = Column(Enum(Side, create_constraint=True), nullable=True)
    proposition_votes = Column(Integer, nullable=True)
    opposition_votes = Column(Integer, nullable=True)
    proposition_team_points = Column(Float, nullable=True)
    opposition_team_points = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_debates_round', 'round_id'),
        Index('idx_debates_tournament_status', 'tournament_id', 'status'),
    )

    @property
    def team_ids(self) -> List[int]:
        return [
            team_id for team_id in (self.proposition_team_id, self.opposition_team_id)
            if team_id is not None
        ]

    def side_of(self, team_id: int) -> Optional[Side]:
        if team_id is None:
            return None
        if team_id == self.proposition_team_id:
            return Side.PROPOSITION
        if team_id == self.opposition_team_id:
            return Side.OPPOSITION
        return None

    def team_for(self, side: Side) -> Optional[int]:
        if side == Side.PROPOSITION:
            return self.proposition_team_id
        return self.opposition_team_id

    def pairing_state(self) -> Dict[str, Any]:
        """Fields an admin may edit through the pairing store."""
        return {
            "room_name": self.room_name,
            "judges": list(self.judges or []),
            "head_judge_id": self.head_judge_id,
            "proposition_team_id": self.proposition_team_id,
            "opposition_team_id": self.opposition_team_id,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "round_id": self.round_id,
            "tournament_id": self.tournament_id,
            "room_name": self.room_name,
            "proposition_team_id": self.proposition_team_id,
            "opposition_team_id": self.opposition_team_id,
            "judges": list(self.judges or []),
            "head_judge_id": self.head_judge_id,
            "status": enum_value(self.status),
            "is_public_speaking": self.is_public_speaking,
            "winning_team_id": self.winning_team_id,
            "winning_team_position": enum_value(self.winning_team_position),
            "proposition_votes": self.proposition_votes,
            "opposition_votes": self.opposition_votes,
            "proposition_team_points": self.proposition_team_points,
            "opposition_team_points": self.opposition_team_points,
            "created_at": isoformat(self.created_at),
        }
