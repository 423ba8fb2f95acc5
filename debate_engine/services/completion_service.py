"""
Round / Tournament Completion Cascade

Runs inside the caller's transaction after a ballot completes a debate.
Never commits on its own.

A round auto-completes only when every debate in it is completed with a
decided winner and every judged debate holds a final ballot from each
assigned judge. A tied debate therefore keeps its round open until an
admin ballot override breaks the tie.

When the last configured round of an in-progress tournament completes,
the tournament completes too.
"""
import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.config.feature_flags import FeatureFlags
from debate_engine.errors import NotFoundError
from debate_engine.orm.ballot import Ballot
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.tournament import Round, RoundStatus, Tournament, TournamentStatus
from debate_engine.services import lookups
from debate_engine.state_machines.lifecycle import transition_round, transition_tournament

logger = logging.getLogger(__name__)


async def final_ballot_judges(debate_ids: List[int], db: AsyncSession) -> Dict[int, Set[int]]:
    """debate_id -> ids of judges holding a final ballot."""
    if not debate_ids:
        return {}
    result = await db.execute(
        select(Ballot.debate_id, Ballot.judge_id).where(
            Ballot.debate_id.in_(debate_ids),
            Ballot.feedback_submitted.is_(True),
        )
    )
    finals: Dict[int, Set[int]] = defaultdict(set)
    for debate_id, judge_id in result.all():
        finals[debate_id].add(judge_id)
    return finals


def blocking_reasons(debates: List[Debate], finals: Dict[int, Set[int]]) -> List[str]:
    """Why a round cannot complete yet; empty when it can."""
    if not debates:
        return ["round has no debates"]

    reasons = []
    for debate in debates:
        if debate.status != DebateStatus.COMPLETED:
            reasons.append(f"{debate.room_name}: debate is {debate.status.value}")
            continue
        if debate.winning_team_id is None:
            reasons.append(f"{debate.room_name}: no winner decided")
            continue
        judges = set(debate.judges or [])
        if judges and not judges <= finals.get(debate.id, set()):
            missing = len(judges - finals.get(debate.id, set()))
            reasons.append(f"{debate.room_name}: {missing} final ballots outstanding")
    return reasons


async def cascade_round_completion(round_id: int, db: AsyncSession) -> Dict[str, Any]:
    """
    Complete the round when eligible, then the tournament when its
    final round is done.

    Returns:
        {"round_completed": bool, "tournament_completed": bool, "blocking": [...]}
    """
    outcome = {"round_completed": False, "tournament_completed": False, "blocking": []}

    if not FeatureFlags.is_enabled("FEATURE_ROUND_AUTO_COMPLETION"):
        return outcome

    result = await db.execute(select(Round).where(Round.id == round_id).with_for_update())
    round_obj = result.scalar_one_or_none()
    if round_obj is None:
        raise NotFoundError("Round", round_id)

    if round_obj.status == RoundStatus.COMPLETED:
        return outcome

    debates = await lookups.fetch_round_debates(round_id, db)
    finals = await final_ballot_judges([d.id for d in debates], db)
    reasons = blocking_reasons(debates, finals)
    if reasons:
        outcome["blocking"] = reasons
        logger.info(f"Round {round_id} not yet complete: {'; '.join(reasons)}")
        return outcome

    transition_round(round_obj, RoundStatus.COMPLETED)
    round_obj.end_time = datetime.utcnow()
    await db.flush()
    outcome["round_completed"] = True
    logger.info(f"Round {round_obj.round_number} of tournament {round_obj.tournament_id} completed")

    outcome["tournament_completed"] = await cascade_tournament_completion(round_obj.tournament_id, db)
    return outcome


async def cascade_tournament_completion(tournament_id: int, db: AsyncSession) -> bool:
    if not FeatureFlags.is_enabled("FEATURE_TOURNAMENT_AUTO_COMPLETION"):
        return False

    result = await db.execute(
        select(Tournament).where(Tournament.id == tournament_id).with_for_update()
    )
    tournament = result.scalar_one_or_none()
    if tournament is None or tournament.status != TournamentStatus.IN_PROGRESS:
        return False
    if tournament.total_rounds <= 0:
        return False

    rounds = await lookups.fetch_rounds(tournament_id, db)
    completed = {r.round_number for r in rounds if r.status == RoundStatus.COMPLETED}
    expected = set(range(1, tournament.total_rounds + 1))
    if not expected <= completed or any(r.status != RoundStatus.COMPLETED for r in rounds):
        return False

    transition_tournament(tournament, TournamentStatus.COMPLETED)
    await db.flush()
    logger.info(f"Tournament {tournament_id} completed after round {max(completed)}")
    return True
