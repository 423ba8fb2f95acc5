"""
Ballot Consensus Engine Test Suite

- Draft upsert and final immutability
- Majority vote over final ballots only, ties leave no winner
- Team points as the per-judge average of speaker totals
- No partial writes on invalid scores
- Head judge visibility, admin override and moderation flags
"""
import pytest
from sqlalchemy import func, select

from debate_engine.errors import (
    AlreadyFinalizedError, AuthorizationError, ConflictStateError, ErrorCode, NotFoundError,
    ValidationError
)
from debate_engine.orm.ballot import Ballot
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.tournament import Round, RoundStatus
from debate_engine.services import lookups
from debate_engine.services.ballot_service import (
    flag_ballot, get_debate_judge_submissions, get_judge_ballot, has_flags,
    list_flags, list_judge_debates, list_tournament_ballots, submit_ballot,
    unflag_ballot, update_ballot
)
from debate_engine.tests.factories import pair_round, panel, room, speakers


async def open_debate(db, world, collaborators, judges=None, round_number=1):
    """Pair Northside A (proposition) against Southside with a neutral panel."""
    judges = judges if judges is not None else panel(world)
    result = await pair_round(db, world, collaborators, round_number, [
        room("Room 1", world.north_a, world.south, judges, head=judges[0]),
    ])
    return result["debate_ids"][0]


def scores_for(world, prop_subs=(20, 20, 20, 20), opp_subs=(15, 15, 15, 15)):
    return speakers(world.north_a, "proposition", prop_subs) + speakers(world.south, "opposition", opp_subs)


async def vote(db, world, collaborators, debate_id, judge, side, is_final=True, **kwargs):
    team = world.north_a if side == "proposition" else world.south
    return await submit_ballot(
        debate_id, team, side, kwargs.pop("scores", scores_for(world)),
        judge, db, collaborators, is_final=is_final, **kwargs
    )


class TestSubmitBallot:
    @pytest.mark.asyncio
    async def test_draft_is_patched_in_place(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        collaborators.audit.records.clear()
        judge = world.judges[0]

        first = await vote(db, world, collaborators, debate_id, judge, "proposition", is_final=False)
        second = await vote(db, world, collaborators, debate_id, judge, "opposition", is_final=False,
                            notes="changed my mind")

        assert first["ballot_id"] == second["ballot_id"]
        assert second["is_final"] is False
        assert second["debate_outcome"] is None

        ballot = await db.get(Ballot, second["ballot_id"])
        assert ballot.winning_team_id == world.south
        assert ballot.notes == "changed my mind"
        assert ballot.feedback_submitted is False
        assert [s["score"] for s in ballot.speaker_scores] == [24.3] * 3 + [18.6] * 3

        count = (await db.execute(select(func.count()).select_from(Ballot))).scalar()
        assert count == 1
        assert collaborators.audit.actions() == ["ballot_submitted", "ballot_submitted"]
        assert collaborators.audit.records[0]["description"] == "Created ballot draft"
        assert collaborators.audit.records[1]["description"] == "Updated ballot draft"

    @pytest.mark.asyncio
    async def test_final_ballot_cannot_be_resubmitted(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        judge = world.judges[0]
        await vote(db, world, collaborators, debate_id, judge, "proposition")

        with pytest.raises(AlreadyFinalizedError) as exc_info:
            await vote(db, world, collaborators, debate_id, judge, "opposition")
        assert exc_info.value.code == ErrorCode.ALREADY_FINALIZED
        assert exc_info.value.status_code == 400

        ballot = (await db.execute(select(Ballot))).scalar_one()
        assert ballot.winning_team_id == world.north_a

    @pytest.mark.asyncio
    async def test_out_of_range_score_writes_nothing(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        bad = scores_for(world)
        bad[4]["style_strategy_delivery"] = 26

        with pytest.raises(ValidationError) as exc_info:
            await vote(db, world, collaborators, debate_id, world.judges[0], "proposition", scores=bad)
        assert exc_info.value.field == "style_strategy_delivery"

        count = (await db.execute(select(func.count()).select_from(Ballot))).scalar()
        assert count == 0

    @pytest.mark.asyncio
    async def test_winner_must_match_side(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        with pytest.raises(ValidationError) as exc_info:
            await submit_ballot(debate_id, world.south, "proposition", scores_for(world),
                                world.judges[0], db, collaborators)
        assert exc_info.value.field == "winning_team_id"

        with pytest.raises(ValidationError) as exc_info:
            await submit_ballot(debate_id, world.south, "government", scores_for(world),
                                world.judges[0], db, collaborators)
        assert exc_info.value.field == "winning_position"

    @pytest.mark.asyncio
    async def test_speakers_must_belong_to_debate(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        with pytest.raises(ValidationError) as exc_info:
            await vote(db, world, collaborators, debate_id, world.judges[0], "proposition",
                       scores=speakers(world.east, "proposition"))
        assert exc_info.value.field == "speaker_scores"

    @pytest.mark.asyncio
    async def test_only_assigned_volunteers(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)

        with pytest.raises(AuthorizationError) as exc_info:
            await vote(db, world, collaborators, debate_id, world.conflicted_judge, "proposition")
        assert exc_info.value.code == ErrorCode.NOT_ASSIGNED
        assert exc_info.value.status_code == 403

        with pytest.raises(AuthorizationError):
            await vote(db, world, collaborators, debate_id, world.admin, "proposition")

    @pytest.mark.asyncio
    async def test_no_show_debate_refuses_ballots(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        debate = await db.get(Debate, debate_id)
        debate.status = DebateStatus.NO_SHOW
        await db.commit()

        with pytest.raises(ConflictStateError):
            await vote(db, world, collaborators, debate_id, world.judges[0], "proposition")


class TestConsensus:
    @pytest.mark.asyncio
    async def test_two_final_and_one_draft(self, db, world, collaborators):
        """Two final proposition ballots decide the debate; the draft neither votes nor completes the round."""
        debate_id = await open_debate(db, world, collaborators)
        j1, j2, j3 = world.judges

        await vote(db, world, collaborators, debate_id, j1, "proposition")
        await vote(db, world, collaborators, debate_id, j3, "opposition", is_final=False)
        result = await vote(db, world, collaborators, debate_id, j2, "proposition")

        outcome = result["debate_outcome"]
        assert outcome["winning_team_id"] == world.north_a
        assert outcome["winning_team_position"] == "proposition"
        assert outcome["proposition_votes"] == 2
        assert outcome["opposition_votes"] == 0
        assert outcome["final_ballots"] == 2
        assert result["round_completed"] is False

        debate = await db.get(Debate, debate_id)
        assert debate.status == DebateStatus.COMPLETED
        assert debate.winning_team_id == world.north_a
        round_obj = await db.get(Round, debate.round_id)
        assert round_obj.status == RoundStatus.PENDING

    @pytest.mark.asyncio
    async def test_last_final_ballot_completes_round(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        j1, j2, j3 = world.judges

        await vote(db, world, collaborators, debate_id, j1, "proposition")
        await vote(db, world, collaborators, debate_id, j2, "proposition")
        result = await vote(db, world, collaborators, debate_id, j3, "opposition")

        assert result["debate_outcome"]["proposition_votes"] == 2
        assert result["debate_outcome"]["opposition_votes"] == 1
        assert result["round_completed"] is True
        assert result["tournament_completed"] is False

        debate = await db.get(Debate, debate_id)
        round_obj = await db.get(Round, debate.round_id)
        assert round_obj.status == RoundStatus.COMPLETED
        assert round_obj.end_time is not None

    @pytest.mark.asyncio
    async def test_team_points_are_averaged_per_judge(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators, judges=panel(world)[:2])
        j1, j2 = world.judges[:2]

        await vote(db, world, collaborators, debate_id, j1, "proposition",
                   scores=scores_for(world, (25, 25, 25, 25), (15, 15, 15, 15)))
        result = await vote(db, world, collaborators, debate_id, j2, "proposition",
                            scores=scores_for(world, (20, 20, 20, 20), (15, 15, 15, 15)))

        outcome = result["debate_outcome"]
        # (3 * 30.0 + 3 * 24.3) / 2 judges
        assert outcome["proposition_team_points"] == pytest.approx(81.45)
        assert outcome["opposition_team_points"] == pytest.approx(55.8)

    @pytest.mark.asyncio
    async def test_tie_leaves_winner_unset_and_blocks_round(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators, judges=panel(world)[:2])
        j1, j2 = world.judges[:2]

        await vote(db, world, collaborators, debate_id, j1, "proposition")
        result = await vote(db, world, collaborators, debate_id, j2, "opposition")

        assert result["debate_outcome"]["winning_team_id"] is None
        assert result["debate_outcome"]["winning_team_position"] is None
        assert result["round_completed"] is False

        debate = await db.get(Debate, debate_id)
        assert debate.status == DebateStatus.COMPLETED
        assert debate.winning_team_id is None

    @pytest.mark.asyncio
    async def test_admin_override_breaks_a_tie(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators, judges=panel(world)[:2])
        j1, j2 = world.judges[:2]
        first = await vote(db, world, collaborators, debate_id, j1, "proposition")
        await vote(db, world, collaborators, debate_id, j2, "opposition")

        result = await update_ballot(first["ballot_id"], {"winning_position": "opposition"},
                                     world.admin, db, collaborators)

        assert result["ballot"]["winning_team_id"] == world.south
        assert result["debate_outcome"]["winning_team_id"] == world.south
        assert result["debate_outcome"]["opposition_votes"] == 2
        assert result["round_completed"] is True


class TestAdminBallotOperations:
    @pytest.mark.asyncio
    async def test_final_cannot_revert_to_draft(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        result = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition")
        with pytest.raises(ValidationError):
            await update_ballot(result["ballot_id"], {"feedback_submitted": False},
                                world.admin, db, collaborators)

    @pytest.mark.asyncio
    async def test_admin_can_finalize_a_draft(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        draft = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition",
                           is_final=False)
        result = await update_ballot(draft["ballot_id"], {"feedback_submitted": True},
                                     world.admin, db, collaborators)
        assert result["ballot"]["feedback_submitted"] is True
        assert result["debate_outcome"]["proposition_votes"] == 1

    @pytest.mark.asyncio
    async def test_update_requires_admin(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        draft = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition",
                           is_final=False)
        with pytest.raises(AuthorizationError):
            await update_ballot(draft["ballot_id"], {"notes": "x"}, world.judges[0], db, collaborators)

    @pytest.mark.asyncio
    async def test_flag_and_unflag(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        result = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition",
                            is_final=False, flag_reason="Speaker left early")
        ballot_id = result["ballot_id"]

        await flag_ballot(ballot_id, "Scores look inconsistent", world.admin, db, collaborators)
        assert await has_flags(ballot_id, db) is True
        flags = await list_flags(ballot_id, db)
        assert [(f["type"], f["reason"]) for f in flags] == [
            ("judge", "Speaker left early"),
            ("admin", "Scores look inconsistent"),
        ]

        overview = await list_tournament_ballots(world.tournament_id, world.admin, db)
        assert overview[0]["has_flagged_ballots"] is True
        assert overview[0]["judges"][0]["is_flagged"] is True

        cleared = await unflag_ballot(ballot_id, world.admin, db, collaborators)
        assert cleared["cleared"] == 2
        assert await has_flags(ballot_id, db) is False
        assert "ballot_flagged" in collaborators.audit.actions()
        assert "ballot_unflagged" in collaborators.audit.actions()

    @pytest.mark.asyncio
    async def test_flag_requires_reason(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        result = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition")
        with pytest.raises(ValidationError):
            await flag_ballot(result["ballot_id"], "  ", world.admin, db, collaborators)

    @pytest.mark.asyncio
    async def test_tournament_overview(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        j1, j2, _ = world.judges
        await vote(db, world, collaborators, debate_id, j1, "proposition")
        await vote(db, world, collaborators, debate_id, j2, "proposition", is_final=False)

        overview = await list_tournament_ballots(world.tournament_id, world.admin, db)
        assert len(overview) == 1
        debate = overview[0]
        assert debate["submissions_count"] == 2
        assert debate["final_submissions_count"] == 1
        assert debate["completion_percentage"] == pytest.approx(100 / 3)
        assert debate["has_flagged_ballots"] is False
        assert [(j["has_submitted"], j["is_final"], j["is_head_judge"]) for j in debate["judges"]] == [
            (True, True, True),
            (True, False, False),
            (False, False, False),
        ]

        pending = await list_tournament_ballots(
            world.tournament_id, world.admin, db, status=DebateStatus.PENDING
        )
        assert pending == []


class TestRowLocking:
    @pytest.fixture
    def lock_calls(self, monkeypatch):
        calls = []
        lock_round = lookups.lock_round
        get_debate = lookups.get_debate

        async def recording_lock_round(round_id, db):
            calls.append("round")
            await lock_round(round_id, db)

        async def recording_get_debate(debate_id, db, for_update=False):
            if for_update:
                calls.append("debate")
            return await get_debate(debate_id, db, for_update=for_update)

        monkeypatch.setattr(lookups, "lock_round", recording_lock_round)
        monkeypatch.setattr(lookups, "get_debate", recording_get_debate)
        return calls

    @pytest.mark.asyncio
    async def test_submit_locks_round_before_debate(self, db, world, collaborators, lock_calls):
        debate_id = await open_debate(db, world, collaborators)
        lock_calls.clear()

        await vote(db, world, collaborators, debate_id, world.judges[0], "proposition", is_final=False)

        assert lock_calls == ["round", "debate"]

    @pytest.mark.asyncio
    async def test_admin_update_locks_round_before_debate(self, db, world, collaborators, lock_calls):
        debate_id = await open_debate(db, world, collaborators)
        draft = await vote(db, world, collaborators, debate_id, world.judges[0], "proposition",
                           is_final=False)
        lock_calls.clear()

        await update_ballot(draft["ballot_id"], {"notes": "checked"}, world.admin, db, collaborators)

        assert lock_calls == ["round", "debate"]

    @pytest.mark.asyncio
    async def test_missing_debate(self, db, world):
        with pytest.raises(NotFoundError):
            await lookups.lock_debate_and_round(9999, db)


class TestJudgeViews:
    @pytest.mark.asyncio
    async def test_own_ballot(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        assert await get_judge_ballot(debate_id, world.judges[1], db) is None

        await vote(db, world, collaborators, debate_id, world.judges[1], "opposition", is_final=False)
        ballot = await get_judge_ballot(debate_id, world.judges[1], db)
        assert ballot["winning_position"] == "opposition"
        assert ballot["flags"] == []

    @pytest.mark.asyncio
    async def test_head_judge_sees_all_submissions(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        head, other, _ = world.judges
        await vote(db, world, collaborators, debate_id, head, "proposition", is_final=False)
        await vote(db, world, collaborators, debate_id, other, "opposition", is_final=False)

        submissions = await get_debate_judge_submissions(debate_id, head, db)
        assert [s["judge_name"] for s in submissions] == ["Judge 1", "Judge 2"]

        with pytest.raises(AuthorizationError):
            await get_debate_judge_submissions(debate_id, other, db)

    @pytest.mark.asyncio
    async def test_assigned_debates(self, db, world, collaborators):
        debate_id = await open_debate(db, world, collaborators)
        await vote(db, world, collaborators, debate_id, world.judges[0], "proposition", is_final=False)

        mine = await list_judge_debates(world.tournament_id, world.judges[0], db)
        assert len(mine) == 1
        assert mine[0]["is_head_judge"] is True
        assert mine[0]["my_submission"]["winning_position"] == "proposition"
        assert mine[0]["proposition_team"]["name"] == "Northside A"
        assert mine[0]["round"]["round_number"] == 1

        assert await list_judge_debates(world.tournament_id, world.conflicted_judge, db) == []
