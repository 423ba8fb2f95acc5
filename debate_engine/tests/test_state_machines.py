"""
Status state machine tests.
"""
import pytest

from debate_engine.errors import ErrorCode, InvalidTransitionError
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.tournament import Round, RoundStatus, Tournament, TournamentStatus
from debate_engine.state_machines import (
    DEBATE_MACHINE, ROUND_MACHINE, TOURNAMENT_MACHINE,
    transition_debate, transition_round, transition_tournament
)


class TestTournamentMachine:
    def test_forward_path(self):
        tournament = Tournament(name="T", status=TournamentStatus.DRAFT)
        for target in (TournamentStatus.PUBLISHED, TournamentStatus.IN_PROGRESS, TournamentStatus.COMPLETED):
            assert transition_tournament(tournament, target) is True
        assert tournament.status == TournamentStatus.COMPLETED

    def test_completed_is_terminal(self):
        tournament = Tournament(name="T", status=TournamentStatus.COMPLETED)
        assert TOURNAMENT_MACHINE.is_terminal(TournamentStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition_tournament(tournament, TournamentStatus.IN_PROGRESS)
        assert exc_info.value.status_code == 409
        assert exc_info.value.code == ErrorCode.STATE_TRANSITION_INVALID
        assert tournament.status == TournamentStatus.COMPLETED

    def test_cannot_skip_publication(self):
        assert not TOURNAMENT_MACHINE.is_valid_transition(
            TournamentStatus.DRAFT, TournamentStatus.IN_PROGRESS
        )


class TestRoundMachine:
    def test_pending_can_complete_directly(self):
        round_obj = Round(round_number=1, status=RoundStatus.PENDING)
        assert transition_round(round_obj, RoundStatus.COMPLETED) is True

    def test_completed_cannot_reopen(self):
        round_obj = Round(round_number=1, status=RoundStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            transition_round(round_obj, RoundStatus.PENDING)

    def test_same_state_is_noop(self):
        round_obj = Round(round_number=1, status=RoundStatus.COMPLETED)
        assert transition_round(round_obj, RoundStatus.COMPLETED) is False
        assert ROUND_MACHINE.is_valid_transition(RoundStatus.COMPLETED, RoundStatus.COMPLETED)


class TestDebateMachine:
    @pytest.mark.parametrize("target", [
        DebateStatus.IN_PROGRESS, DebateStatus.COMPLETED, DebateStatus.NO_SHOW
    ])
    def test_pending_moves_forward(self, target):
        debate = Debate(room_name="Room 1", status=DebateStatus.PENDING)
        assert transition_debate(debate, target) is True
        assert debate.status == target

    def test_no_show_is_terminal(self):
        debate = Debate(room_name="Room 1", status=DebateStatus.NO_SHOW)
        with pytest.raises(InvalidTransitionError):
            transition_debate(debate, DebateStatus.COMPLETED)

    def test_completed_cannot_return_to_pending(self):
        debate = Debate(room_name="Room 1", status=DebateStatus.COMPLETED)
        assert DEBATE_MACHINE.is_terminal(DebateStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            transition_debate(debate, DebateStatus.PENDING)
