"""
Ballot Consensus Engine

Judges submit one ballot per debate. Drafts are patched in place; a
final ballot is immutable to its judge. Every final submission
recomputes the debate outcome from all final ballots:

- Majority vote on winning_position; a tie leaves the winner unset
- Team points = per-judge average of the team's summed speaker scores
- The debate is completed either way, then the completion cascade runs

Admins may override ballots and attach moderation flags. Flags are
stored as BallotFlag rows rather than markers inside the notes text.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.errors import (
    AlreadyFinalizedError, AuthorizationError, ConflictStateError, ErrorCode,
    NotFoundError, ValidationError
)
from debate_engine.orm.ballot import Ballot, BallotFlag, FlagType
from debate_engine.orm.debate import Debate, DebateStatus, Side
from debate_engine.orm.tournament import Round
from debate_engine.rbac import Actor, ensure_admin, ensure_volunteer
from debate_engine.services import lookups
from debate_engine.services.completion_service import cascade_round_completion
from debate_engine.services.side_effects import Collaborators, audit_best_effort
from debate_engine.services.speaker_score import normalize_speaker_scores
from debate_engine.state_machines.lifecycle import transition_debate

logger = logging.getLogger(__name__)

ADMIN_EDITABLE_FIELDS = (
    "winning_team_id", "winning_position", "speaker_scores", "notes", "feedback_submitted"
)


# =============================================================================
# Validation helpers
# =============================================================================

def parse_side(value: Any) -> Side:
    if isinstance(value, Side):
        return value
    try:
        return Side(value)
    except ValueError:
        raise ValidationError(
            f"winning_position must be 'proposition' or 'opposition', got {value!r}",
            field="winning_position"
        )


def validate_verdict(
    debate: Debate,
    winning_team_id: Optional[int],
    winning_position: Side,
    speaker_scores: Sequence[Dict[str, Any]],
) -> None:
    """The winner must sit on the named side and scored speakers must belong to the debate."""
    expected = debate.team_for(winning_position)
    if expected is None:
        raise ValidationError(
            f"Debate has no {winning_position.value} team",
            field="winning_position"
        )
    if winning_team_id != expected:
        raise ValidationError(
            f"Team {winning_team_id} is not the {winning_position.value} team of this debate",
            field="winning_team_id"
        )
    participants = set(debate.team_ids)
    for entry in speaker_scores:
        if entry.get("team_id") not in participants:
            raise ValidationError(
                f"Speaker {entry.get('speaker_id')} is scored for team "
                f"{entry.get('team_id')}, which is not in this debate",
                field="speaker_scores"
            )


async def _get_ballot(ballot_id: int, db: AsyncSession) -> Ballot:
    result = await db.execute(select(Ballot).where(Ballot.id == ballot_id))
    ballot = result.scalar_one_or_none()
    if ballot is None:
        raise NotFoundError("Ballot", ballot_id)
    return ballot


async def _get_judge_ballot(
    debate_id: int,
    judge_id: int,
    db: AsyncSession,
    for_update: bool = False
) -> Optional[Ballot]:
    query = select(Ballot).where(Ballot.debate_id == debate_id, Ballot.judge_id == judge_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


def _ensure_assigned(debate: Debate, actor: Actor) -> None:
    if actor.id not in (debate.judges or []):
        logger.warning(f"User {actor.id} is not assigned to debate {debate.id}")
        raise AuthorizationError("Not assigned to this debate", code=ErrorCode.NOT_ASSIGNED)


# =============================================================================
# Consensus
# =============================================================================

def tally_ballots(debate: Debate, final_ballots: Sequence[Ballot]) -> Dict[str, Any]:
    """Pure majority-vote and team-point computation over final ballots."""
    prop_votes = sum(1 for b in final_ballots if b.winning_position == Side.PROPOSITION)
    opp_votes = sum(1 for b in final_ballots if b.winning_position == Side.OPPOSITION)

    winning_team_id = None
    winning_position = None
    if prop_votes > opp_votes:
        winning_team_id, winning_position = debate.proposition_team_id, Side.PROPOSITION
    elif opp_votes > prop_votes:
        winning_team_id, winning_position = debate.opposition_team_id, Side.OPPOSITION

    totals: Dict[int, float] = {}
    for ballot in final_ballots:
        for entry in ballot.speaker_scores or []:
            team_id = entry.get("team_id")
            totals[team_id] = totals.get(team_id, 0.0) + float(entry.get("score") or 0)

    count = len(final_ballots)

    def average(team_id: Optional[int]) -> Optional[float]:
        if team_id is None:
            return None
        return totals.get(team_id, 0.0) / count if count else 0.0

    return {
        "winning_team_id": winning_team_id,
        "winning_team_position": winning_position,
        "proposition_votes": prop_votes,
        "opposition_votes": opp_votes,
        "proposition_team_points": average(debate.proposition_team_id),
        "opposition_team_points": average(debate.opposition_team_id),
    }


async def recompute_debate_outcome(debate: Debate, db: AsyncSession) -> Optional[Dict[str, Any]]:
    """
    Write the consensus of all final ballots onto the debate and mark it
    completed. No-op (None) while no ballot is final.
    """
    result = await db.execute(
        select(Ballot).where(Ballot.debate_id == debate.id, Ballot.feedback_submitted.is_(True))
    )
    final_ballots = list(result.scalars().all())
    if not final_ballots:
        return None

    tally = tally_ballots(debate, final_ballots)
    for key, value in tally.items():
        setattr(debate, key, value)
    transition_debate(debate, DebateStatus.COMPLETED)
    await db.flush()

    if tally["winning_team_id"] is None:
        logger.info(
            f"Debate {debate.id} tied {tally['proposition_votes']}-{tally['opposition_votes']}; "
            "no winner declared"
        )
    return {
        **tally,
        "winning_team_position": tally["winning_team_position"].value if tally["winning_team_position"] else None,
        "final_ballots": len(final_ballots),
    }


# =============================================================================
# Judge operations
# =============================================================================

async def submit_ballot(
    debate_id: int,
    winning_team_id: Optional[int],
    winning_position: Any,
    speaker_scores: Sequence[Dict[str, Any]],
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
    notes: Optional[str] = None,
    is_final: bool = False,
    flag_reason: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create or patch the caller's ballot for a debate.

    Raises:
        AuthorizationError: caller is not a volunteer or not on the panel
        NotFoundError: debate missing
        AlreadyFinalizedError: caller already has a final ballot here
        ValidationError: bad verdict or an out-of-range sub-score; nothing is written
    """
    ensure_volunteer(actor, "submit a ballot")

    try:
        debate = await lookups.lock_debate_and_round(debate_id, db)
        _ensure_assigned(debate, actor)
        if debate.status == DebateStatus.NO_SHOW:
            raise ConflictStateError("Cannot submit a ballot for a no-show debate")

        existing = await _get_judge_ballot(debate_id, actor.id, db, for_update=True)
        if existing is not None and existing.feedback_submitted:
            raise AlreadyFinalizedError()

        side = parse_side(winning_position)
        validate_verdict(debate, winning_team_id, side, speaker_scores)
        scored = normalize_speaker_scores(speaker_scores)

        now = datetime.utcnow()
        if existing is None:
            ballot = Ballot(debate_id=debate_id, judge_id=actor.id)
            db.add(ballot)
        else:
            ballot = existing
        ballot.winning_team_id = winning_team_id
        ballot.winning_position = side
        ballot.speaker_scores = scored
        ballot.notes = notes
        ballot.feedback_submitted = bool(is_final)
        ballot.submitted_at = now
        await db.flush()

        if flag_reason:
            db.add(BallotFlag(
                ballot_id=ballot.id,
                flag_type=FlagType.JUDGE,
                reason=flag_reason,
                flagged_by=actor.id,
                created_at=now,
            ))

        outcome = None
        cascade = {"round_completed": False, "tournament_completed": False, "blocking": []}
        if is_final:
            outcome = await recompute_debate_outcome(debate, db)
            cascade = await cascade_round_completion(debate.round_id, db)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if is_final:
        description = "Submitted final ballot"
    elif existing is None:
        description = "Created ballot draft"
    else:
        description = "Updated ballot draft"
    logger.info(f"Judge {actor.id} on debate {debate_id}: {description}")

    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="ballot_submitted",
        resource_type="ballots",
        resource_id=ballot.id,
        description=description,
    )

    return {
        "success": True,
        "ballot_id": ballot.id,
        "is_final": bool(is_final),
        "debate_outcome": outcome,
        "round_completed": cascade["round_completed"],
        "tournament_completed": cascade["tournament_completed"],
    }


async def get_judge_ballot(debate_id: int, actor: Actor, db: AsyncSession) -> Optional[Dict[str, Any]]:
    ensure_volunteer(actor, "view a ballot")
    debate = await lookups.get_debate(debate_id, db)
    _ensure_assigned(debate, actor)

    ballot = await _get_judge_ballot(debate_id, actor.id, db)
    if ballot is None:
        return None
    view = ballot.to_dict()
    view["flags"] = await list_flags(ballot.id, db)
    return view


async def get_debate_judge_submissions(
    debate_id: int,
    actor: Actor,
    db: AsyncSession
) -> List[Dict[str, Any]]:
    """Every ballot of a debate; only its head judge may look."""
    ensure_volunteer(actor, "view panel submissions")
    debate = await lookups.get_debate(debate_id, db)
    if debate.head_judge_id != actor.id:
        raise AuthorizationError("Only head judge can view all submissions")

    result = await db.execute(
        select(Ballot).where(Ballot.debate_id == debate_id).order_by(Ballot.id.asc())
    )
    ballots = list(result.scalars().all())
    users = await lookups.fetch_users([b.judge_id for b in ballots], db)

    submissions = []
    for ballot in ballots:
        view = ballot.to_dict()
        judge = users.get(ballot.judge_id)
        view["judge_name"] = judge.name if judge else "Unknown Judge"
        submissions.append(view)
    return submissions


async def list_judge_debates(
    tournament_id: int,
    actor: Actor,
    db: AsyncSession,
    round_number: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Debates the caller judges, with their own submission state."""
    ensure_volunteer(actor, "list assigned debates")

    query = select(Debate, Round).join(Round, Debate.round_id == Round.id).where(
        Debate.tournament_id == tournament_id
    )
    if round_number is not None:
        query = query.where(Round.round_number == round_number)
    result = await db.execute(query.order_by(Round.round_number.asc(), Debate.id.asc()))
    # judges is a JSON list, so membership is filtered here
    rows = [(d, r) for d, r in result.all() if actor.id in (d.judges or [])]
    if not rows:
        return []

    debate_ids = [d.id for d, _ in rows]
    teams = await lookups.fetch_teams(
        [t for d, _ in rows for t in (d.proposition_team_id, d.opposition_team_id)], db
    )
    ballots = await db.execute(select(Ballot).where(Ballot.debate_id.in_(debate_ids)))
    by_debate: Dict[int, List[Ballot]] = {}
    for ballot in ballots.scalars().all():
        by_debate.setdefault(ballot.debate_id, []).append(ballot)

    debates = []
    for debate, round_obj in rows:
        submissions = by_debate.get(debate.id, [])
        mine = next((b for b in submissions if b.judge_id == actor.id), None)
        view = debate.to_dict()
        view["round"] = round_obj.to_dict()
        prop, opp = teams.get(debate.proposition_team_id), teams.get(debate.opposition_team_id)
        view["proposition_team"] = prop.to_dict() if prop else None
        view["opposition_team"] = opp.to_dict() if opp else None
        view["my_submission"] = mine.to_dict() if mine else None
        view["all_submissions_count"] = len(submissions)
        view["is_head_judge"] = debate.head_judge_id == actor.id
        debates.append(view)
    return debates


# =============================================================================
# Admin operations
# =============================================================================

async def list_tournament_ballots(
    tournament_id: int,
    actor: Actor,
    db: AsyncSession,
    round_number: Optional[int] = None,
    status: Optional[DebateStatus] = None,
) -> List[Dict[str, Any]]:
    """Per-debate submission overview for moderators."""
    ensure_admin(actor, "list tournament ballots")
    await lookups.get_tournament(tournament_id, db)

    query = select(Debate, Round).join(Round, Debate.round_id == Round.id).where(
        Debate.tournament_id == tournament_id
    )
    if round_number is not None:
        query = query.where(Round.round_number == round_number)
    if status is not None:
        query = query.where(Debate.status == status)
    result = await db.execute(query.order_by(Round.round_number.asc(), Debate.id.asc()))
    rows = list(result.all())
    if not rows:
        return []

    debate_ids = [d.id for d, _ in rows]
    teams = await lookups.fetch_teams(
        [t for d, _ in rows for t in (d.proposition_team_id, d.opposition_team_id)], db
    )
    users = await lookups.fetch_users([j for d, _ in rows for j in d.judges], db)

    ballot_result = await db.execute(select(Ballot).where(Ballot.debate_id.in_(debate_ids)))
    ballots = list(ballot_result.scalars().all())
    flagged_ids = set()
    if ballots:
        flag_result = await db.execute(
            select(BallotFlag.ballot_id).where(BallotFlag.ballot_id.in_([b.id for b in ballots]))
        )
        flagged_ids = set(flag_result.scalars().all())

    by_debate: Dict[int, List[Ballot]] = {}
    for ballot in ballots:
        by_debate.setdefault(ballot.debate_id, []).append(ballot)

    overview = []
    for debate, round_obj in rows:
        submissions = by_debate.get(debate.id, [])
        by_judge = {b.judge_id: b for b in submissions}
        final_count = sum(1 for b in submissions if b.feedback_submitted)

        judges = []
        for judge_id in debate.judges:
            user = users.get(judge_id)
            submission = by_judge.get(judge_id)
            entry = user.to_dict() if user else {"id": judge_id}
            entry.update({
                "has_submitted": submission is not None,
                "is_final": bool(submission and submission.feedback_submitted),
                "is_head_judge": debate.head_judge_id == judge_id,
                "is_flagged": bool(submission and submission.id in flagged_ids),
            })
            judges.append(entry)

        view = debate.to_dict()
        view["round"] = round_obj.to_dict()
        prop, opp = teams.get(debate.proposition_team_id), teams.get(debate.opposition_team_id)
        view["proposition_team"] = prop.to_dict() if prop else None
        view["opposition_team"] = opp.to_dict() if opp else None
        view["judges"] = judges
        view["submissions_count"] = len(submissions)
        view["final_submissions_count"] = final_count
        view["completion_percentage"] = (
            final_count / len(debate.judges) * 100 if debate.judges else 0
        )
        view["has_flagged_ballots"] = any(b.id in flagged_ids for b in submissions)
        overview.append(view)
    return overview


async def update_ballot(
    ballot_id: int,
    updates: Dict[str, Any],
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
) -> Dict[str, Any]:
    """
    Admin override of any ballot field.

    A final ballot cannot be reverted to draft. Whenever the ballot is
    final after the patch, the debate outcome is recomputed and the
    cascade runs; this is how a tied debate gets resolved.
    """
    ensure_admin(actor, "update a ballot")

    unknown = sorted(set(updates) - set(ADMIN_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(unknown)}")

    try:
        ballot = await _get_ballot(ballot_id, db)
        debate = await lookups.lock_debate_and_round(ballot.debate_id, db)
        await db.refresh(ballot, with_for_update=True)

        if ballot.feedback_submitted and updates.get("feedback_submitted") is False:
            raise ValidationError(
                "A final ballot cannot be reverted to draft",
                field="feedback_submitted"
            )

        side = parse_side(updates.get("winning_position", ballot.winning_position))
        winning_team_id = updates.get("winning_team_id", ballot.winning_team_id)
        if "winning_position" in updates and "winning_team_id" not in updates:
            winning_team_id = debate.team_for(side)
        speaker_scores = ballot.speaker_scores
        if updates.get("speaker_scores") is not None:
            speaker_scores = normalize_speaker_scores(updates["speaker_scores"])
        validate_verdict(debate, winning_team_id, side, speaker_scores)

        ballot.winning_position = side
        ballot.winning_team_id = winning_team_id
        ballot.speaker_scores = speaker_scores
        if "notes" in updates:
            ballot.notes = updates["notes"]
        if updates.get("feedback_submitted"):
            ballot.feedback_submitted = True
        await db.flush()

        outcome = None
        cascade = {"round_completed": False, "tournament_completed": False, "blocking": []}
        if ballot.feedback_submitted and debate.status != DebateStatus.NO_SHOW:
            outcome = await recompute_debate_outcome(debate, db)
            cascade = await cascade_round_completion(debate.round_id, db)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Admin {actor.id} updated ballot {ballot_id}")
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="ballot_submitted",
        resource_type="ballots",
        resource_id=ballot_id,
        description="Admin updated ballot",
        new_state={k: v for k, v in updates.items() if k != "speaker_scores"},
    )

    return {
        "success": True,
        "ballot": ballot.to_dict(),
        "debate_outcome": outcome,
        "round_completed": cascade["round_completed"],
        "tournament_completed": cascade["tournament_completed"],
    }


# =============================================================================
# Flags
# =============================================================================

async def has_flags(ballot_id: int, db: AsyncSession) -> bool:
    result = await db.execute(
        select(func.count()).select_from(BallotFlag).where(BallotFlag.ballot_id == ballot_id)
    )
    return (result.scalar() or 0) > 0


async def list_flags(ballot_id: int, db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(BallotFlag).where(BallotFlag.ballot_id == ballot_id).order_by(BallotFlag.id.asc())
    )
    return [flag.to_dict() for flag in result.scalars().all()]


async def flag_ballot(
    ballot_id: int,
    reason: str,
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
) -> Dict[str, Any]:
    ensure_admin(actor, "flag a ballot")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required to flag a ballot", field="reason")

    try:
        await _get_ballot(ballot_id, db)
        flag = BallotFlag(
            ballot_id=ballot_id,
            flag_type=FlagType.ADMIN,
            reason=reason.strip(),
            flagged_by=actor.id,
            created_at=datetime.utcnow(),
        )
        db.add(flag)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Ballot {ballot_id} flagged by admin {actor.id}")
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="ballot_flagged",
        resource_type="ballots",
        resource_id=ballot_id,
        description=f"Flagged ballot for review: {reason.strip()}",
    )
    return {"success": True, "flag": flag.to_dict()}


async def unflag_ballot(
    ballot_id: int,
    actor: Actor,
    db: AsyncSession,
    collaborators: Collaborators,
) -> Dict[str, Any]:
    """Clear every admin and judge flag on a ballot."""
    ensure_admin(actor, "unflag a ballot")

    try:
        await _get_ballot(ballot_id, db)
        result = await db.execute(delete(BallotFlag).where(BallotFlag.ballot_id == ballot_id))
        cleared = result.rowcount or 0
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Cleared {cleared} flags on ballot {ballot_id}")
    await audit_best_effort(
        collaborators,
        user_id=actor.id,
        action="ballot_unflagged",
        resource_type="ballots",
        resource_id=ballot_id,
        description="Admin unflagged ballot",
    )
    return {"success": True, "cleared": cleared}
