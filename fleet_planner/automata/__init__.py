"""Task specifications as finite automata over environment words."""

from fleet_planner.automata.automaton import INVALID_STATE, TaskAutomaton
from fleet_planner.automata.tasks import coarse_replenishment, fine_replenishment, regeneration

__all__ = [
    "INVALID_STATE",
    "TaskAutomaton",
    "coarse_replenishment",
    "fine_replenishment",
    "regeneration",
]
