"""
Pairing API Routes

- Save / replace the pairings of a round (admin)
- Patch a single pending pairing (admin)
- Enriched pairing views, conflict preview and quality statistics
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.database import get_db
from debate_engine.orm.user import UserRole
from debate_engine.rbac import Actor, get_current_actor, require_role
from debate_engine.schemas.pairings import (
    PairingUpdateRequest, SavePairingsRequest, ValidateRoomRequest
)
from debate_engine.services import pairing_service
from debate_engine.services.pairing_service import ProposedPairing
from debate_engine.services.side_effects import Collaborators, get_collaborators

router = APIRouter(tags=["Pairings"])


@router.post(
    "/tournaments/{tournament_id}/rounds/{round_number}/pairings",
    status_code=status.HTTP_201_CREATED
)
async def save_round_pairings(
    tournament_id: int,
    round_number: int,
    request: SavePairingsRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    """
    Replace the debates of a round.

    Returns per-room conflicts and non-blocking warnings. Fails with 400
    listing every structural violation, or 409 once the round has started.
    """
    pairings = [ProposedPairing(**p.model_dump()) for p in request.pairings]
    return await pairing_service.save_pairings(
        tournament_id, round_number, pairings, actor, db, collaborators
    )


@router.patch("/debates/{debate_id}/pairing")
async def update_debate_pairing(
    debate_id: int,
    request: PairingUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    return await pairing_service.update_pairing(
        debate_id, request.model_dump(exclude_unset=True), actor, db, collaborators
    )


@router.get("/tournaments/{tournament_id}/pairings")
async def list_pairings(
    tournament_id: int,
    round_number: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> List[Dict[str, Any]]:
    """Rounds with enriched debates, sorted by round and room number."""
    return await pairing_service.get_tournament_pairings(tournament_id, db, round_number)


@router.post("/tournaments/{tournament_id}/pairings/validate")
async def validate_room(
    tournament_id: int,
    request: ValidateRoomRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
) -> Dict[str, Any]:
    conflicts = await pairing_service.validate_pairing_conflicts(
        tournament_id,
        request.judges,
        actor,
        db,
        proposition_team_id=request.proposition_team_id,
        opposition_team_id=request.opposition_team_id,
        round_number=request.round_number,
    )
    return {"conflicts": conflicts}


@router.get("/tournaments/{tournament_id}/pairings/stats")
async def pairing_stats(
    tournament_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
) -> Dict[str, Any]:
    return await pairing_service.get_pairing_stats(tournament_id, actor, db)


@router.get("/tournaments/{tournament_id}/preliminaries")
async def preliminaries_status(
    tournament_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Dict[str, Any]:
    return await pairing_service.check_preliminaries_complete(tournament_id, db)
