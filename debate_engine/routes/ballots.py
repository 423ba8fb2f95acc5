"""
Ballot API Routes

Judges (volunteers) submit and read their own ballots; admins list,
override and flag them.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.core.rate_limit import SUBMISSION_LIMIT, limiter
from debate_engine.database import get_db
from debate_engine.orm.debate import DebateStatus
from debate_engine.orm.user import UserRole
from debate_engine.rbac import Actor, get_current_actor, require_role
from debate_engine.schemas.ballots import (
    BallotUpdateRequest, FlagBallotRequest, JudgeFeedbackRequest, SubmitBallotRequest
)
from debate_engine.services import ballot_service, feedback_service
from debate_engine.services.side_effects import Collaborators, get_collaborators

router = APIRouter(tags=["Ballots"])


# =============================================================================
# Judge endpoints
# =============================================================================

@router.post("/debates/{debate_id}/ballot")
@limiter.limit(SUBMISSION_LIMIT)
async def submit_ballot(
    request: Request,
    debate_id: int,
    payload: SubmitBallotRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.VOLUNTEER])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    """Save a draft, or submit the final ballot when `is_final_submission` is set."""
    return await ballot_service.submit_ballot(
        debate_id,
        payload.winning_team_id,
        payload.winning_position,
        [s.model_dump() for s in payload.speaker_scores],
        actor,
        db,
        collaborators,
        notes=payload.notes,
        is_final=payload.is_final_submission,
        flag_reason=payload.flag_reason,
    )


@router.get("/debates/{debate_id}/ballot")
async def get_my_ballot(
    debate_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.VOLUNTEER])),
) -> Optional[Dict[str, Any]]:
    return await ballot_service.get_judge_ballot(debate_id, actor, db)


@router.get("/debates/{debate_id}/submissions")
async def get_panel_submissions(
    debate_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.VOLUNTEER])),
) -> List[Dict[str, Any]]:
    return await ballot_service.get_debate_judge_submissions(debate_id, actor, db)


@router.get("/tournaments/{tournament_id}/judge-debates")
async def list_my_debates(
    tournament_id: int,
    round_number: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.VOLUNTEER])),
) -> List[Dict[str, Any]]:
    return await ballot_service.list_judge_debates(tournament_id, actor, db, round_number)


@router.post("/debates/{debate_id}/feedback")
@limiter.limit(SUBMISSION_LIMIT)
async def submit_judge_feedback(
    request: Request,
    debate_id: int,
    payload: JudgeFeedbackRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Dict[str, Any]:
    return await feedback_service.record_judge_feedback(
        debate_id,
        payload.team_id,
        payload.judge_id,
        {
            "clarity": payload.clarity,
            "fairness": payload.fairness,
            "knowledge": payload.knowledge,
            "helpfulness": payload.helpfulness,
        },
        actor,
        db,
        bias_detected=payload.bias_detected,
        comments=payload.comments,
    )


# =============================================================================
# Admin endpoints
# =============================================================================

@router.get("/tournaments/{tournament_id}/ballots")
async def list_ballots(
    tournament_id: int,
    round_number: Optional[int] = Query(None, ge=1),
    status: Optional[DebateStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
) -> List[Dict[str, Any]]:
    return await ballot_service.list_tournament_ballots(
        tournament_id, actor, db, round_number=round_number, status=status
    )


@router.patch("/ballots/{ballot_id}")
async def override_ballot(
    ballot_id: int,
    request: BallotUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    return await ballot_service.update_ballot(
        ballot_id, request.model_dump(exclude_unset=True), actor, db, collaborators
    )


@router.post("/ballots/{ballot_id}/flag")
async def flag_ballot(
    ballot_id: int,
    request: FlagBallotRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    return await ballot_service.flag_ballot(ballot_id, request.reason, actor, db, collaborators)


@router.delete("/ballots/{ballot_id}/flag")
async def unflag_ballot(
    ballot_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_role([UserRole.ADMIN])),
    collaborators: Collaborators = Depends(get_collaborators),
) -> Dict[str, Any]:
    return await ballot_service.unflag_ballot(ballot_id, actor, db, collaborators)
