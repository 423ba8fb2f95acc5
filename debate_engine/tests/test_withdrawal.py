"""
Team withdrawal tests.
"""
import pytest

from debate_engine.errors import AuthorizationError, ConflictStateError, NotFoundError
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.team import Team, TeamStatus
from debate_engine.services.withdrawal_service import withdraw_team
from debate_engine.tests.factories import pair_round, room


async def first_round(db, world, collaborators):
    j1, j2, j3 = world.judges
    result = await pair_round(db, world, collaborators, 1, [
        room("Room 1", world.north_a, world.south, [j1.id, j2.id, j3.id], head=j1.id),
        room("Room 2", world.east, world.west, [world.conflicted_judge.id]),
        room("Room 3", world.north_b, None, bye=True),
    ])
    return result["debate_ids"]


class TestWithdrawTeam:
    @pytest.mark.asyncio
    async def test_opponent_gets_a_bye(self, db, world, collaborators):
        room1, _, _ = await first_round(db, world, collaborators)

        result = await withdraw_team(world.south, world.admin, db, collaborators, reason="Illness")

        assert result["withdrawal_reason"] == "Illness"
        assert result["affected_debates"] == [{
            "debate_id": room1,
            "round_number": 1,
            "room_name": "Room 1",
            "remaining_team": "Northside A",
            "status": "pending",
        }]

        debate = await db.get(Debate, room1)
        assert debate.proposition_team_id == world.north_a
        assert debate.opposition_team_id is None
        assert debate.is_public_speaking is True
        assert debate.status == DebateStatus.PENDING

        team = await db.get(Team, world.south)
        assert team.status == TeamStatus.WITHDRAWN

    @pytest.mark.asyncio
    async def test_remaining_opposition_moves_to_proposition(self, db, world, collaborators):
        room1, _, _ = await first_round(db, world, collaborators)

        await withdraw_team(world.north_a, world.admin, db, collaborators)

        debate = await db.get(Debate, room1)
        assert debate.proposition_team_id == world.south
        assert debate.opposition_team_id is None
        assert debate.is_public_speaking is True

    @pytest.mark.asyncio
    async def test_sole_bye_team_becomes_no_show(self, db, world, collaborators):
        _, _, room3 = await first_round(db, world, collaborators)

        result = await withdraw_team(world.north_b, world.admin, db, collaborators)

        assert result["affected_debates"][0]["status"] == "noShow"
        assert result["affected_debates"][0]["remaining_team"] is None
        debate = await db.get(Debate, room3)
        assert debate.status == DebateStatus.NO_SHOW
        assert debate.proposition_team_id is None
        assert debate.opposition_team_id is None

    @pytest.mark.asyncio
    async def test_started_debates_are_untouched(self, db, world, collaborators):
        _, room2, _ = await first_round(db, world, collaborators)
        debate = await db.get(Debate, room2)
        debate.status = DebateStatus.IN_PROGRESS
        await db.commit()

        result = await withdraw_team(world.east, world.admin, db, collaborators)

        assert result["affected_debates"] == []
        debate = await db.get(Debate, room2)
        assert debate.proposition_team_id == world.east
        assert debate.opposition_team_id == world.west
        assert debate.is_public_speaking is False

    @pytest.mark.asyncio
    async def test_notifies_and_audits(self, db, world, collaborators):
        await first_round(db, world, collaborators)
        collaborators.notifier.sent.clear()

        await withdraw_team(world.south, world.admin, db, collaborators, reason="Travel")

        notice = collaborators.notifier.sent[-1]
        assert notice["title"] == "Team Withdrawal"
        assert notice["tournament_id"] == world.tournament_id
        assert '"Southside"' in notice["message"]
        assert "Round 1 Room 1" in notice["message"]

        record = collaborators.audit.records[-1]
        assert record["action"] == "team_updated"
        assert record["description"] == "Team withdrawn: Southside - Reason: Travel (1 debates affected)"

    @pytest.mark.asyncio
    async def test_team_without_debates(self, db, world, collaborators):
        result = await withdraw_team(world.west, world.admin, db, collaborators)
        assert result["affected_debates"] == []
        assert collaborators.notifier.sent[-1]["message"].endswith("Affected pairings have been updated.")

    @pytest.mark.asyncio
    async def test_already_withdrawn(self, db, world, collaborators):
        await withdraw_team(world.west, world.admin, db, collaborators)
        with pytest.raises(ConflictStateError) as exc_info:
            await withdraw_team(world.west, world.admin, db, collaborators)
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_only(self, db, world, collaborators):
        with pytest.raises(AuthorizationError):
            await withdraw_team(world.west, world.student, db, collaborators)
        team = await db.get(Team, world.west)
        assert team.status == TeamStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_missing_team(self, db, world, collaborators):
        with pytest.raises(NotFoundError):
            await withdraw_team(9999, world.admin, db, collaborators)
