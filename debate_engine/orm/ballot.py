"""
Ballot and BallotFlag models.

A ballot is one judge's verdict for one debate. `feedback_submitted`
marks it final; from then on the owning judge cannot change it.
Moderation flags live in their own table, never inside `notes`.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, ForeignKey, Index,
    UniqueConstraint, Enum, Text
)

from debate_engine.core.db_types import JSONList
from debate_engine.orm.base import Base, isoformat, enum_value
from debate_engine.orm.debate import Side


class FlagType(PyEnum):
    ADMIN = "admin"
    JUDGE = "judge"


# =============================================================================
# Model 1: Ballot
# =============================================================================

class Ballot(Base):
    __tablename__ = "ballots"

    id = Column(Integer, primary_key=True, index=True)
    debate_id = Column(Integer, ForeignKey("debates.id", ondelete="CASCADE"), nullable=False)
    judge_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    winning_team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    winning_position = Column(Enum(Side, create_constraint=True), nullable=False)
    # [{speaker_id, team_id, position, <4 sub-scores>, score, comments, bias_detected}]
    speaker_scores = Column(JSONList, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    feedback_submitted = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('debate_id', 'judge_id', name='uq_ballot_debate_judge'),
        Index('idx_ballots_debate', 'debate_id'),
    )

    @property
    def is_final(self) -> bool:
        return bool(self.feedback_submitted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "debate_id": self.debate_id,
            "judge_id": self.judge_id,
            "winning_team_id": self.winning_team_id,
            "winning_position": enum_value(self.winning_position),
            "speaker_scores": list(self.speaker_scores or []),
            "notes": self.notes,
            "feedback_submitted": self.feedback_submitted,
            "submitted_at": isoformat(self.submitted_at),
        }


# =============================================================================
# Model 2: BallotFlag
# =============================================================================

class BallotFlag(Base):
    __tablename__ = "ballot_flags"

    id = Column(Integer, primary_key=True, index=True)
    ballot_id = Column(Integer, ForeignKey("ballots.id", ondelete="CASCADE"), nullable=False)
    flag_type = Column(Enum(FlagType, create_constraint=True), nullable=False)
    reason = Column(String(1000), nullable=False)
    flagged_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_ballot_flags_ballot', 'ballot_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ballot_id": self.ballot_id,
            "type": enum_value(self.flag_type),
            "reason": self.reason,
            "by": self.flagged_by,
            "at": isoformat(self.created_at),
        }
