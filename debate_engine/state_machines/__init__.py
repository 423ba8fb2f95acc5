from debate_engine.state_machines.lifecycle import (
    StatusMachine,
    TOURNAMENT_MACHINE,
    ROUND_MACHINE,
    DEBATE_MACHINE,
    transition_tournament,
    transition_round,
    transition_debate,
)

__all__ = [
    "StatusMachine",
    "TOURNAMENT_MACHINE",
    "ROUND_MACHINE",
    "DEBATE_MACHINE",
    "transition_tournament",
    "transition_round",
    "transition_debate",
]
