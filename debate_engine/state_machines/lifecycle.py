"""
Status State Machines

Explicit transition tables for tournament, round and debate status.
All status writes in the services go through `transition()`, so an
illegal move (e.g. completed -> pending) surfaces as
InvalidTransitionError instead of a silent patch.

Re-entering the current status is an idempotent no-op.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, Generic, Type, TypeVar

from debate_engine.errors import InvalidTransitionError
from debate_engine.orm.debate import Debate, DebateStatus
from debate_engine.orm.tournament import Round, RoundStatus, Tournament, TournamentStatus

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=Enum)


class StatusMachine(Generic[S]):
    """Transition table for one status enum."""

    def __init__(self, entity: str, status_enum: Type[S], transitions: Dict[S, FrozenSet[S]]):
        self.entity = entity
        self.status_enum = status_enum
        self.transitions = transitions

    def is_valid_transition(self, current: S, target: S) -> bool:
        if current == target:
            return True
        return target in self.transitions.get(current, frozenset())

    def is_terminal(self, status: S) -> bool:
        return not self.transitions.get(status)

    def transition(self, obj, target: S) -> bool:
        """
        Move `obj.status` to `target`.

        Returns True when the status changed, False for a same-state no-op.
        Raises InvalidTransitionError for anything the table forbids.
        """
        current = obj.status
        if current == target:
            return False
        if not self.is_valid_transition(current, target):
            logger.warning(
                f"Rejected {self.entity} {getattr(obj, 'id', None)} transition "
                f"{current.value} -> {target.value}"
            )
            raise InvalidTransitionError(self.entity, current.value, target.value)
        obj.status = target
        logger.info(f"{self.entity} {getattr(obj, 'id', None)}: {current.value} -> {target.value}")
        return True


# =============================================================================
# Transition tables
# =============================================================================

TOURNAMENT_MACHINE: StatusMachine[TournamentStatus] = StatusMachine(
    "tournament",
    TournamentStatus,
    {
        TournamentStatus.DRAFT: frozenset({
            TournamentStatus.PUBLISHED,
            TournamentStatus.CANCELLED,
        }),
        TournamentStatus.PUBLISHED: frozenset({
            TournamentStatus.IN_PROGRESS,
            TournamentStatus.CANCELLED,
        }),
        TournamentStatus.IN_PROGRESS: frozenset({
            TournamentStatus.COMPLETED,
            TournamentStatus.CANCELLED,
        }),
        TournamentStatus.COMPLETED: frozenset(),
        TournamentStatus.CANCELLED: frozenset(),
    },
)

ROUND_MACHINE: StatusMachine[RoundStatus] = StatusMachine(
    "round",
    RoundStatus,
    {
        RoundStatus.PENDING: frozenset({RoundStatus.IN_PROGRESS, RoundStatus.COMPLETED}),
        RoundStatus.IN_PROGRESS: frozenset({RoundStatus.COMPLETED}),
        RoundStatus.COMPLETED: frozenset(),
    },
)

DEBATE_MACHINE: StatusMachine[DebateStatus] = StatusMachine(
    "debate",
    DebateStatus,
    {
        DebateStatus.PENDING: frozenset({
            DebateStatus.IN_PROGRESS,
            DebateStatus.COMPLETED,
            DebateStatus.NO_SHOW,
        }),
        DebateStatus.IN_PROGRESS: frozenset({DebateStatus.COMPLETED, DebateStatus.NO_SHOW}),
        # A completed debate is re-completed when a later final ballot
        # changes the consensus; that is the same-state no-op path.
        DebateStatus.COMPLETED: frozenset(),
        DebateStatus.NO_SHOW: frozenset(),
    },
)


def transition_tournament(tournament: Tournament, target: TournamentStatus) -> bool:
    return TOURNAMENT_MACHINE.transition(tournament, target)


def transition_round(round_obj: Round, target: RoundStatus) -> bool:
    return ROUND_MACHINE.transition(round_obj, target)


def transition_debate(debate: Debate, target: DebateStatus) -> bool:
    return DEBATE_MACHINE.transition(debate, target)
