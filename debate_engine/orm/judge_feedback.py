"""
Feedback a team leaves about a judge after a debate.
Each dimension is scored 1-5.
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, DateTime, Boolean, ForeignKey, Index, Text

from debate_engine.orm.base import Base, isoformat


class JudgeFeedback(Base):
    __tablename__ = "judge_feedback"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False)
    debate_id = Column(Integer, ForeignKey("debates.id", ondelete="CASCADE"), nullable=False)
    judge_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    clarity = Column(Integer, nullable=False)
    fairness = Column(Integer, nullable=False)
    knowledge = Column(Integer, nullable=False)
    helpfulness = Column(Integer, nullable=False)
    bias_detected = Column(Boolean, nullable=False, default=False)
    comments = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_judge_feedback_judge_tournament', 'judge_id', 'tournament_id'),
    )

    @property
    def average_score(self) -> float:
        return (self.clarity + self.fairness + self.knowledge + self.helpfulness) / 4

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "debate_id": self.debate_id,
            "judge_id": self.judge_id,
            "team_id": self.team_id,
            "clarity": self.clarity,
            "fairness": self.fairness,
            "knowledge": self.knowledge,
            "helpfulness": self.helpfulness,
            "bias_detected": self.bias_detected,
            "comments": self.comments,
            "submitted_at": isoformat(self.submitted_at),
        }
