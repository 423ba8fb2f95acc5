"""
Team API Routes: withdrawal and derived standings.
"""
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.database import get_db
from debate_engine.orm.user import UserRole
from debate_engine.rbac import Actor, get_current_actor, require_role
from debate_engine.schemas.teams import WithdrawTeamRequest
from debate_engine.services import standings_service, withdrawal_service
from debate_engine.services.side_effects import Collaborators, get_collaborators

router = APIRouter(tags=["Teams"])


@router.post("/teams/{team_id}/withdraw")
async def withdraw_team(
    team_id: int,
    request: WithdrawTeamRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    """Withdraw a team; its pending debates become byes."""
    return await withdrawal_service.withdraw_team(
        team_id, actor, db, collaborators, reason=request.reason
    )


@router.get("/tournaments/{tournament_id}/standings")
async def team_standings(
    tournament_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[Dict[str, Any]]:
    return await standings_service.get_team_standings(tournament_id, db)
