"""
ORM models. Importing this package registers every table on Base.metadata.
"""
from debate_engine.orm.base import Base
from debate_engine.orm.school import School
from debate_engine.orm.user import User, UserRole
from debate_engine.orm.tournament import (
    Tournament, TournamentStatus, Round, RoundType, RoundStatus
)
from debate_engine.orm.team import Team, TeamStatus
from debate_engine.orm.debate import Debate, DebateStatus, Side
from debate_engine.orm.ballot import Ballot, BallotFlag, FlagType
from debate_engine.orm.judge_feedback import JudgeFeedback
from debate_engine.orm.audit_log import AuditLog

__all__ = [
    "Base",
    "School",
    "User", "UserRole",
    "Tournament", "TournamentStatus", "Round", "RoundType", "RoundStatus",
    "Team", "TeamStatus",
    "Debate", "DebateStatus", "Side",
    "Ballot", "BallotFlag", "FlagType",
    "JudgeFeedback",
    "AuditLog",
]
