"""
Withdrawal Handler

Withdrawing a team rewrites every *pending* debate that references it:
- the remaining team moves to the proposition slot and the debate becomes a bye
- a pending bye whose only team withdrew is cleared and marked noShow

Debates already inProgress or completed are left exactly as they are.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.errors import ConflictStateError
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.team import TeamStatus
from debate_engine.orm.tournament import Round
from debate_engine.rbac import Actor, ensure_admin
from debate_engine.services import lookups
from debate_engine.services.side_effects import (
    Collaborators, audit_best_effort, notify_best_effort
)
from debate_engine.state_machines.lifecycle import transition_debate

logger = logging.getLogger(__name__)


async def withdraw_team(
    team_id: int,
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
    reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Mark a team withdrawn and convert its pending debates.

    Raises:
        AuthorizationError: caller is not an admin
        NotFoundError: team missing
        ConflictStateError: team already withdrawn
    """
    ensure_admin(actor, "withdraw a team")

    try:
        team = await lookups.get_team(team_id, db, for_update=True)
        if team.status == TeamStatus.WITHDRAWN:
            raise ConflictStateError("Team is already withdrawn")

        team.status = TeamStatus.WITHDRAWN
        team.updated_at = datetime.utcnow()

        result = await db.execute(
            select(Debate, Round.round_number)
            .join(Round, Debate.round_id == Round.id)
            .where(
                Debate.tournament_id == team.tournament_id,
                Debate.status == DebateStatus.PENDING,
                or_(Debate.proposition_team_id == team_id, Debate.opposition_team_id == team_id),
            )
            .order_by(Round.round_number.asc(), Debate.id.asc())
            .with_for_update(of=Debate)
        )
        rows = list(result.all())

        remaining_ids = [
            d.opposition_team_id if d.proposition_team_id == team_id else d.proposition_team_id
            for d, _ in rows
        ]
        remaining_teams = await lookups.fetch_teams(remaining_ids, db)

        affected: List[Dict[str, Any]] = []
        for (debate, round_number), remaining_id in zip(rows, remaining_ids):
            if remaining_id is None:
                debate.proposition_team_id = None
                debate.opposition_team_id = None
                transition_debate(debate, DebateStatus.NO_SHOW)
                remaining_name = None
            else:
                debate.proposition_team_id = remaining_id
                debate.opposition_team_id = None
                debate.is_public_speaking = True
                remaining = remaining_teams.get(remaining_id)
                remaining_name = remaining.name if remaining else None
            debate.updated_at = datetime.utcnow()
            affected.append({
                "debate_id": debate.id,
                "round_number": round_number,
                "room_name": debate.room_name,
                "remaining_team": remaining_name,
                "status": debate.status.value,
            })

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Team {team_id} withdrawn; {len(affected)} pending debates converted")

    rooms = ", ".join(f"Round {a['round_number']} {a['room_name']}" for a in affected)
    message = f'Team "{team.name}" has withdrawn from the tournament. Affected pairings have been updated.'
    if rooms:
        message += f" Affected rooms: {rooms}."
    await notify_best_effort(collaborators, team.tournament_id, "Team Withdrawal", message)

    description = f"Team withdrawn: {team.name}"
    if reason:
        description += f" - Reason: {reason}"
    description += f" ({len(affected)} debates affected)"
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="team_updated",
        resource_type="teams",
        resource_id=team_id,
        description=description,
    )

    return {
        "success": True,
        "affected_debates": affected,
        "withdrawal_reason": reason,
    }
