"""
Judge feedback submitted by teams. Feeds the feedback_conflict check.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.errors import AuthorizationError, ConflictStateError, ValidationError
from debate_engine.orm.judge_feedback import JudgeFeedback
from debate_engine.orm.user import UserRole
from debate_engine.rbac import Actor, ensure_role
from debate_engine.services import lookups

logger = logging.getLogger(__name__)

FEEDBACK_DIMENSIONS = ("clarity", "fairness", "knowledge", "helpfulness")


async def record_judge_feedback(
    debate_id: int,
    team_id: int,
    judge_id: int,
    scores: Dict[str, int],
    actor: Actor,
    db: AsyncSession,
    bias_detected: bool = False,
    comments: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Store one team's rating of one judge for one debate.

    Students may only rate on behalf of a team they belong to.
    """
    ensure_role(actor, [UserRole.STUDENT, UserRole.SCHOOL_ADMIN, UserRole.ADMIN], "submit judge feedback")

    for dimension in FEEDBACK_DIMENSIONS:
        value = scores.get(dimension)
        if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 5:
            raise ValidationError(f"{dimension} must be an integer between 1 and 5", field=dimension)

    try:
        debate = await lookups.get_debate(debate_id, db)
        if team_id not in debate.team_ids:
            raise ValidationError("Team did not take part in this debate", field="team_id")
        if judge_id not in (debate.judges or []):
            raise ValidationError("Judge was not on this debate's panel", field="judge_id")

        team = await lookups.get_team(team_id, db)
        if actor.role == UserRole.STUDENT and actor.id not in (team.members or []):
            raise AuthorizationError("Only team members can rate this debate's judges")

        result = await db.execute(
            select(JudgeFeedback.id).where(
                JudgeFeedback.debate_id == debate_id,
                JudgeFeedback.team_id == team_id,
                JudgeFeedback.judge_id == judge_id,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictStateError("Feedback for this judge was already submitted")

        feedback = JudgeFeedback(
            tournament_id=debate.tournament_id,
            debate_id=debate_id,
            judge_id=judge_id,
            team_id=team_id,
            bias_detected=bool(bias_detected),
            comments=comments,
            submitted_at=datetime.utcnow(),
            **{dimension: scores[dimension] for dimension in FEEDBACK_DIMENSIONS},
        )
        db.add(feedback)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Team {team_id} rated judge {judge_id} on debate {debate_id}")
    return {"success": True, "feedback": feedback.to_dict()}
