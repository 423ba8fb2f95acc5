"""
Shared loaders for the engine services.

Related teams, users and schools are always fetched by id set in one
query per table, never one lookup per referenced row.
"""
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.errors import NotFoundError
from debate_engine.orm.debate import Debate
from debate_engine.orm.judge_feedback import JudgeFeedback
from debate_engine.orm.school import School
from debate_engine.orm.team import Team
from debate_engine.orm.tournament import Round, Tournament
from debate_engine.orm.user import User
from debate_engine.services.conflict_detector import (
    DebateRecord, FeedbackRecord, JudgeRef, ResolvedDebate, TeamRef
)


# =============================================================================
# Single-row loaders
# =============================================================================

async def get_tournament(
    tournament_id: int,
    db: AsyncSession,
    for_update: bool = False
) -> Tournament:
    query = select(Tournament).where(Tournament.id == tournament_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    tournament = result.scalar_one_or_none()
    if tournament is None:
        raise NotFoundError("Tournament", tournament_id)
    return tournament


async def get_round_by_number(
    tournament_id: int,
    round_number: int,
    db: AsyncSession,
    for_update: bool = False
) -> Optional[Round]:
    query = select(Round).where(
        Round.tournament_id == tournament_id,
        Round.round_number == round_number,
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_debate(debate_id: int, db: AsyncSession, for_update: bool = False) -> Debate:
    query = select(Debate).where(Debate.id == debate_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    debate = result.scalar_one_or_none()
    if debate is None:
        raise NotFoundError("Debate", debate_id)
    return debate


async def lock_round(round_id: int, db: AsyncSession) -> None:
    await db.execute(select(Round.id).where(Round.id == round_id).with_for_update())


async def lock_debate_and_round(debate_id: int, db: AsyncSession) -> Debate:
    """
    Lock the debate's round, then the debate itself.

    Every write that touches both rows takes them in this order.
    """
    result = await db.execute(select(Debate.round_id).where(Debate.id == debate_id))
    round_id = result.scalar_one_or_none()
    if round_id is None:
        raise NotFoundError("Debate", debate_id)
    await lock_round(round_id, db)
    return await get_debate(debate_id, db, for_update=True)


async def get_team(team_id: int, db: AsyncSession, for_update: bool = False) -> Team:
    query = select(Team).where(Team.id == team_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFoundError("Team", team_id)
    return team


# =============================================================================
# Batch loaders
# =============================================================================

def _ids(values: Iterable[Optional[int]]) -> List[int]:
    return sorted({value for value in values if value is not None})


async def fetch_teams(team_ids: Iterable[Optional[int]], db: AsyncSession) -> Dict[int, Team]:
    ids = _ids(team_ids)
    if not ids:
        return {}
    result = await db.execute(select(Team).where(Team.id.in_(ids)))
    return {team.id: team for team in result.scalars().all()}


async def fetch_users(user_ids: Iterable[Optional[int]], db: AsyncSession) -> Dict[int, User]:
    ids = _ids(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {user.id: user for user in result.scalars().all()}


async def fetch_schools(school_ids: Iterable[Optional[int]], db: AsyncSession) -> Dict[int, School]:
    ids = _ids(school_ids)
    if not ids:
        return {}
    result = await db.execute(select(School).where(School.id.in_(ids)))
    return {school.id: school for school in result.scalars().all()}


async def fetch_rounds(tournament_id: int, db: AsyncSession) -> List[Round]:
    result = await db.execute(
        select(Round)
        .where(Round.tournament_id == tournament_id)
        .order_by(Round.round_number.asc())
    )
    return list(result.scalars().all())


async def fetch_round_debates(round_id: int, db: AsyncSession) -> List[Debate]:
    result = await db.execute(
        select(Debate).where(Debate.round_id == round_id).order_by(Debate.id.asc())
    )
    return list(result.scalars().all())


# =============================================================================
# Conflict-detector inputs
# =============================================================================

def team_ref(team: Optional[Team], schools: Dict[int, School]) -> Optional[TeamRef]:
    if team is None:
        return None
    school = schools.get(team.school_id) if team.school_id is not None else None
    return TeamRef(
        id=team.id,
        name=team.name,
        school_id=team.school_id,
        school_name=school.name if school else None,
    )


def judge_ref(user: User, schools: Dict[int, School]) -> JudgeRef:
    school = schools.get(user.school_id) if user.school_id is not None else None
    return JudgeRef(
        id=user.id,
        name=user.name,
        school_id=user.school_id,
        school_name=school.name if school else None,
    )


def resolve_debate(
    room_name: str,
    proposition_team_id: Optional[int],
    opposition_team_id: Optional[int],
    judge_ids: Iterable[int],
    is_bye: bool,
    teams: Dict[int, Team],
    users: Dict[int, User],
    schools: Dict[int, School],
) -> ResolvedDebate:
    """Join already-fetched records into the detector's input shape."""
    return ResolvedDebate(
        room_name=room_name,
        proposition=team_ref(teams.get(proposition_team_id), schools),
        opposition=team_ref(teams.get(opposition_team_id), schools),
        judges=[judge_ref(users[judge_id], schools) for judge_id in judge_ids if judge_id in users],
        is_bye=is_bye,
    )


async def load_history(tournament_id: int, db: AsyncSession) -> List[DebateRecord]:
    """Every debate of the tournament, tagged with its round number."""
    result = await db.execute(
        select(Debate, Round.round_number)
        .join(Round, Debate.round_id == Round.id)
        .where(Debate.tournament_id == tournament_id)
        .order_by(Round.round_number.asc(), Debate.id.asc())
    )
    return [
        DebateRecord(
            round_number=round_number,
            proposition_team_id=debate.proposition_team_id,
            opposition_team_id=debate.opposition_team_id,
            is_bye=bool(debate.is_public_speaking),
            judges=list(debate.judges or []),
            head_judge_id=debate.head_judge_id,
        )
        for debate, round_number in result.all()
    ]


async def load_feedback(tournament_id: int, db: AsyncSession) -> List[FeedbackRecord]:
    result = await db.execute(
        select(JudgeFeedback, Round.round_number)
        .join(Debate, JudgeFeedback.debate_id == Debate.id)
        .join(Round, Debate.round_id == Round.id)
        .where(JudgeFeedback.tournament_id == tournament_id)
    )
    return [
        FeedbackRecord(
            judge_id=feedback.judge_id,
            team_id=feedback.team_id,
            round_number=round_number,
            average_score=feedback.average_score,
            bias_detected=bool(feedback.bias_detected),
        )
        for feedback, round_number in result.all()
    ]
