"""
Team standings, derived on read from debate outcomes.

Nothing here is stored: wins, points, side history, opponents and byes
are recomputed from the tournament's debates in round order, so they can
never drift from the ballots that produced them.
"""
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.team import Team
from debate_engine.orm.tournament import Round
from debate_engine.services import lookups

WIN_WEIGHT = 100


def _blank(team: Team) -> Dict[str, Any]:
    return {
        "team_id": team.id,
        "name": team.name,
        "school_id": team.school_id,
        "status": team.status.value,
        "wins": 0,
        "losses": 0,
        "total_points": 0.0,
        "side_history": [],
        "opponents_faced": [],
        "bye_rounds": [],
        "performance_score": 0.0,
    }


async def get_team_standings(tournament_id: int, db: AsyncSession) -> List[Dict[str, Any]]:
    """Standings ordered by wins, then total points, then name."""
    await lookups.get_tournament(tournament_id, db)

    team_result = await db.execute(select(Team).where(Team.tournament_id == tournament_id))
    standings = {team.id: _blank(team) for team in team_result.scalars().all()}

    result = await db.execute(
        select(Debate, Round.round_number)
        .join(Round, Debate.round_id == Round.id)
        .where(Debate.tournament_id == tournament_id)
        .order_by(Round.round_number.asc(), Debate.id.asc())
    )

    for debate, round_number in result.all():
        if debate.is_public_speaking:
            if debate.proposition_team_id in standings:
                standings[debate.proposition_team_id]["bye_rounds"].append(round_number)
            continue

        slots = (
            (debate.proposition_team_id, debate.opposition_team_id, "proposition",
             debate.proposition_team_points),
            (debate.opposition_team_id, debate.proposition_team_id, "opposition",
             debate.opposition_team_points),
        )
        for team_id, opponent_id, side, points in slots:
            entry = standings.get(team_id)
            if entry is None:
                continue
            entry["side_history"].append(side)
            if opponent_id is not None:
                entry["opponents_faced"].append(opponent_id)
            if debate.status != DebateStatus.COMPLETED:
                continue
            entry["total_points"] += points or 0.0
            if debate.winning_team_id == team_id:
                entry["wins"] += 1
            elif debate.winning_team_id is not None:
                entry["losses"] += 1

    for entry in standings.values():
        entry["total_points"] = round(entry["total_points"], 2)
        entry["performance_score"] = round(entry["wins"] * WIN_WEIGHT + entry["total_points"], 2)

    return sorted(
        standings.values(),
        key=lambda e: (-e["wins"], -e["total_points"], e["name"].casefold())
    )
